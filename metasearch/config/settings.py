import os
import logging
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

@dataclass
class SearchEngineConfig:
    """Configuration d'accès à un moteur de recherche"""
    name: str
    base_url: str
    query_param: str = "q"
    # value sent = offset_base + (page - 1) * step, step is 10 in "offset" mode and 1 in "page" mode
    # no page_param: the engine is only queried for its first page
    page_param: Optional[str] = None
    page_mode: str = "offset"
    offset_base: int = 0
    enabled: bool = True
    timeout: int = 15
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    safe_off_params: Dict[str, str] = field(default_factory=dict)
    selectors: Dict[str, str] = field(default_factory=dict)

@dataclass
class CacheConfig:
    """Configuration du cache"""
    enabled: bool = True
    default_ttl: int = 300  # 5 minutes
    max_memory_cache_size: int = 1000

@dataclass
class AggregationConfig:
    """Configuration de l'agrégation multi-moteurs"""
    leg_timeout: float = 30.0
    curated_engines: List[str] = field(default_factory=lambda: ["searx", "bing", "ecosia"])
    curated_result_cap: int = 15
    full_result_cap: int = 20
    fallback_enabled: bool = True
    max_page: int = 10
    provider_method: str = "scrape"

@dataclass
class StorageConfig:
    """Configuration de la persistance (historique, préférences)"""
    enabled: bool = True
    database_path: str = "search_service.db"

def _default_engines() -> List[SearchEngineConfig]:
    generic = {"results": ".result", "title": "h3 a", "link": "h3 a", "snippet": ".content"}
    result_title = {
        "results": ".result", "title": ".result__title a",
        "link": ".result__title a", "snippet": ".result__snippet",
    }
    return [
        SearchEngineConfig(
            name="google", base_url="https://www.google.com/search",
            page_param="start", params={"hl": "en", "gl": "us"},
            safe_off_params={"safe": "off"},
            selectors={"results": "div.g", "title": "h3", "link": "a[href^='http']", "snippet": ".VwiC3b"},
        ),
        SearchEngineConfig(
            name="bing", base_url="https://www.bing.com/search",
            page_param="first", offset_base=1,
            safe_off_params={"adlt": "off"},
            selectors={"results": ".b_algo", "title": "h2 a", "link": "h2 a", "snippet": ".b_caption p"},
        ),
        SearchEngineConfig(
            name="duckduckgo", base_url="https://html.duckduckgo.com/html/",
            page_param="s", safe_off_params={"kp": "-2"},
            selectors={"results": ".result", "title": ".result__a", "link": ".result__a", "snippet": ".result__snippet"},
        ),
        SearchEngineConfig(
            name="yahoo", base_url="https://search.yahoo.com/search",
            query_param="p", page_param="b", offset_base=1,
            safe_off_params={"vm": "r"},
            selectors={"results": ".algo", "title": "h3 a", "link": "h3 a", "snippet": ".compText"},
        ),
        SearchEngineConfig(
            name="brave", base_url="https://search.brave.com/search",
            page_param="offset", page_mode="page",
            safe_off_params={"safesearch": "off"},
            selectors={"results": ".snippet", "title": ".title", "link": "a[href^='http']", "snippet": ".snippet-description"},
        ),
        SearchEngineConfig(
            name="startpage", base_url="https://www.startpage.com/sp/search",
            query_param="query", page_param="startat",
            selectors=result_title,
        ),
        SearchEngineConfig(
            name="searx", base_url="https://searx.be/search",
            page_param="pageno", page_mode="page", offset_base=1,
            safe_off_params={"safesearch": "0"},
            selectors=generic,
        ),
        SearchEngineConfig(
            name="qwant", base_url="https://www.qwant.com/",
            params={"t": "web", "locale": "en_US"},
            safe_off_params={"safesearch": "off"},
            selectors=result_title,
        ),
        SearchEngineConfig(
            name="ecosia", base_url="https://www.ecosia.org/search",
            page_param="p", page_mode="page",
            safe_off_params={"safesearch": "off"},
            selectors=result_title,
        ),
        SearchEngineConfig(
            name="swisscows", base_url="https://swisscows.com/web",
            query_param="query", page_param="page", page_mode="page", offset_base=1,
            selectors=generic,
        ),
        SearchEngineConfig(
            name="mojeek", base_url="https://www.mojeek.com/search",
            page_param="s", offset_base=1,
            selectors={"results": ".results-standard li", "title": "h2 a", "link": "h2 a", "snippet": ".s"},
        ),
        SearchEngineConfig(
            name="yandex", base_url="https://yandex.com/search",
            query_param="text", page_param="p", page_mode="page",
            selectors={"results": ".serp-item", "title": ".organic__url", "link": ".organic__url", "snippet": ".organic__text"},
        ),
        SearchEngineConfig(
            name="baidu", base_url="https://www.baidu.com/s",
            query_param="wd", page_param="pn",
            selectors=generic,
        ),
        SearchEngineConfig(
            name="naver", base_url="https://search.naver.com/search.naver",
            query_param="query", page_param="start", offset_base=1,
            params={"where": "web"},
            selectors={"results": ".sh_web_top", "title": "a.link_tit", "link": "a.link_tit", "snippet": ".dsc_txt"},
        ),
        SearchEngineConfig(
            name="seznam", base_url="https://search.seznam.cz/",
            page_param="from",
            selectors=generic,
        ),
        SearchEngineConfig(
            name="aol", base_url="https://search.aol.com/aol/search",
            page_param="b", offset_base=1,
            selectors={"results": ".algo", "title": "h3 a", "link": "h3 a", "snippet": ".compText"},
        ),
        SearchEngineConfig(
            name="ask", base_url="https://www.ask.com/web",
            page_param="page", page_mode="page", offset_base=1,
            selectors={
                "results": ".PartialSearchResults-item",
                "title": ".PartialSearchResults-item-title a",
                "link": ".PartialSearchResults-item-title a",
                "snippet": ".PartialSearchResults-item-abstract",
            },
        ),
    ]

@dataclass
class ServiceConfig:
    """Configuration principale du service de recherche"""
    # Serveur
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Composants
    cache: CacheConfig = field(default_factory=CacheConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # Moteurs de recherche
    search_engines: List[SearchEngineConfig] = field(default_factory=_default_engines)

def _env_flag(value: str) -> bool:
    return value.lower() in ('true', '1', 'yes')

class Settings:
    """Gestionnaire de configuration centralisé"""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.config = ServiceConfig()
        self._load_from_environment()

    def _env(self, name: str) -> Optional[str]:
        return self.environ.get(name)

    def _load_from_environment(self):
        """Charge la configuration depuis les variables d'environnement"""

        # Configuration serveur
        if self._env('SEARCH_HOST'):
            self.config.host = self._env('SEARCH_HOST')

        if self._env('SEARCH_PORT'):
            try:
                self.config.port = int(self._env('SEARCH_PORT'))
            except ValueError:
                logger.warning("SEARCH_PORT invalide, utilisation de la valeur par défaut")

        if self._env('SEARCH_DEBUG'):
            self.config.debug = _env_flag(self._env('SEARCH_DEBUG'))

        # Configuration cache
        if self._env('CACHE_TTL'):
            try:
                self.config.cache.default_ttl = int(self._env('CACHE_TTL'))
            except ValueError:
                logger.warning("CACHE_TTL invalide, utilisation de la valeur par défaut")

        if self._env('CACHE_ENABLED'):
            self.config.cache.enabled = _env_flag(self._env('CACHE_ENABLED'))

        # Configuration agrégation
        if self._env('LEG_TIMEOUT'):
            try:
                self.config.aggregation.leg_timeout = float(self._env('LEG_TIMEOUT'))
            except ValueError:
                logger.warning("LEG_TIMEOUT invalide, utilisation de la valeur par défaut")

        if self._env('CURATED_ENGINES'):
            names = [name.strip().lower() for name in self._env('CURATED_ENGINES').split(',')]
            self.config.aggregation.curated_engines = [name for name in names if name]

        if self._env('FALLBACK_ENABLED'):
            self.config.aggregation.fallback_enabled = _env_flag(self._env('FALLBACK_ENABLED'))

        if self._env('PROVIDER_METHOD'):
            self.config.aggregation.provider_method = self._env('PROVIDER_METHOD').lower()

        # Configuration persistance
        if self._env('STORAGE_ENABLED'):
            self.config.storage.enabled = _env_flag(self._env('STORAGE_ENABLED'))

        if self._env('DATABASE_PATH'):
            self.config.storage.database_path = self._env('DATABASE_PATH')

        # Configuration logging
        if self._env('LOG_LEVEL'):
            self.config.log_level = self._env('LOG_LEVEL').upper()

        if self._env('LOG_FILE'):
            self.config.log_file = self._env('LOG_FILE')

        # Configuration des moteurs de recherche
        self._load_search_engines_from_env()

    def _load_search_engines_from_env(self):
        """Charge la configuration des moteurs depuis l'environnement"""

        # Instance SearX
        if self._env('SEARX_URL'):
            engine = self.get_engine_config('searx')
            if engine:
                engine.base_url = self._env('SEARX_URL')

        # Désactiver certains moteurs (DISABLE_BING=1, ...)
        for engine in self.config.search_engines:
            flag = self._env(f"DISABLE_{engine.name.upper()}")
            if flag and _env_flag(flag):
                engine.enabled = False

    def get_engine_config(self, name: str) -> Optional[SearchEngineConfig]:
        """Retourne la configuration d'un moteur par son nom"""
        for engine in self.config.search_engines:
            if engine.name == name:
                return engine
        return None

    def get_enabled_search_engines(self) -> List[SearchEngineConfig]:
        """Retourne la liste des moteurs de recherche activés"""
        return [engine for engine in self.config.search_engines if engine.enabled]

    def get_cache_config(self) -> CacheConfig:
        """Retourne la configuration du cache"""
        return self.config.cache

    def get_aggregation_config(self) -> AggregationConfig:
        """Retourne la configuration de l'agrégation"""
        return self.config.aggregation

    def get_storage_config(self) -> StorageConfig:
        """Retourne la configuration de la persistance"""
        return self.config.storage

    def setup_logging(self):
        """Configure le logging basé sur les paramètres"""
        log_level = getattr(logging, self.config.log_level, logging.INFO)

        # Format des logs
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

        # Configuration de base
        logging.basicConfig(
            level=log_level,
            format=log_format,
            datefmt="%Y-%m-%d %H:%M:%S"
        )

        # Fichier de log si spécifié
        if self.config.log_file:
            file_handler = logging.FileHandler(self.config.log_file)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(log_format))

            # Ajouter aux loggers principaux
            for logger_name in ['__main__', 'metasearch']:
                logging.getLogger(logger_name).addHandler(file_handler)

        # Configurer les niveaux pour les bibliothèques externes
        external_loggers = {
            'httpx': logging.WARNING,
            'httpcore': logging.WARNING,
            'playwright': logging.WARNING,
            'aiosqlite': logging.WARNING,
            'bs4': logging.WARNING
        }

        for logger_name, level in external_loggers.items():
            logging.getLogger(logger_name).setLevel(level)

    def validate_config(self) -> bool:
        """Valide la configuration"""
        errors = []

        # Validation serveur
        if not (1 <= self.config.port <= 65535):
            errors.append(f"Port invalide: {self.config.port}")

        # Validation cache
        if self.config.cache.default_ttl <= 0:
            errors.append("default_ttl doit être positif")

        # Validation agrégation
        aggregation = self.config.aggregation
        if aggregation.leg_timeout <= 0:
            errors.append("leg_timeout doit être positif")

        if aggregation.curated_result_cap < 1 or aggregation.full_result_cap < 1:
            errors.append("Les plafonds de résultats doivent être >= 1")

        if aggregation.provider_method not in ("scrape", "browser"):
            errors.append(f"provider_method inconnu: {aggregation.provider_method}")

        # Validation moteurs de recherche
        enabled_names = {engine.name for engine in self.get_enabled_search_engines()}
        if not enabled_names:
            errors.append("Aucun moteur de recherche activé")

        for name in aggregation.curated_engines:
            if name not in enabled_names:
                errors.append(f"Moteur du groupe par défaut non activé: {name}")

        if errors:
            for error in errors:
                logger.error(f"Configuration invalide: {error}")
            return False

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convertit la configuration en dictionnaire (pour debug)"""
        aggregation = self.config.aggregation
        return {
            'server': {
                'host': self.config.host,
                'port': self.config.port,
                'debug': self.config.debug
            },
            'cache': {
                'enabled': self.config.cache.enabled,
                'default_ttl': self.config.cache.default_ttl
            },
            'aggregation': {
                'leg_timeout': aggregation.leg_timeout,
                'curated_engines': list(aggregation.curated_engines),
                'curated_result_cap': aggregation.curated_result_cap,
                'full_result_cap': aggregation.full_result_cap,
                'fallback_enabled': aggregation.fallback_enabled,
                'provider_method': aggregation.provider_method
            },
            'storage': {
                'enabled': self.config.storage.enabled,
                'database_path': self.config.storage.database_path
            },
            'search_engines': [
                {
                    'name': engine.name,
                    'base_url': engine.base_url,
                    'enabled': engine.enabled
                }
                for engine in self.config.search_engines
            ]
        }

# Instance globale
settings = Settings()
