#!/usr/bin/env python3
"""
Meta Search Service - MCP stdio server
Serveur MCP exposant la recherche agrégée multi-moteurs
"""

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# MCP Protocol imports
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from .config.settings import settings
from .exceptions import AllProvidersUnreachable, MetaSearchError
from .search.aggregator import AggregationEngine

logger = logging.getLogger(__name__)


class MetaSearchMCPServer:
    """Serveur MCP pour la recherche web agrégée"""

    def __init__(self, engine: Optional[AggregationEngine] = None):
        self.engine = engine or AggregationEngine.from_settings(settings)

        # Initialize MCP server
        self.server = Server("meta-search")
        self._setup_handlers()

        self._initialized = False

        logger.info("Serveur MCP Meta Search initialisé")
        if settings.config.debug:
            logger.debug(f"Configuration: {settings.to_dict()}")

    async def initialize(self):
        """Initialize async components"""
        if self._initialized:
            return
        await self.engine.initialize()
        self._initialized = True

    def list_tools(self) -> List[types.Tool]:
        selectors = self.engine.selectors()
        return [
            types.Tool(
                name="search_web",
                description="Search the web across several engines, with deduplication, ranking and fallback",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "q": {
                            "type": "string",
                            "description": "Search query"
                        },
                        "engine": {
                            "type": "string",
                            "enum": selectors,
                            "description": "Engine name, 'all' for every engine or 'default' for the curated set"
                        },
                        "page": {
                            "type": "integer",
                            "description": "Result page",
                            "minimum": 1,
                            "maximum": self.engine.max_page,
                            "default": 1
                        },
                        "safe": {
                            "type": "boolean",
                            "description": "Safe search"
                        },
                        "fallback": {
                            "type": "boolean",
                            "description": "Fall back to broader engine sets when the first one returns nothing"
                        }
                    },
                    "required": ["q"]
                }
            ),
            types.Tool(
                name="list_engines",
                description="List the available search engines and their reliability ranks",
                inputSchema={"type": "object", "properties": {}}
            ),
            types.Tool(
                name="clear_cache",
                description="Clear the search result cache",
                inputSchema={"type": "object", "properties": {}}
            ),
        ]

    def _setup_handlers(self):
        """Setup MCP protocol handlers"""

        @self.server.list_tools()
        async def handle_list_tools() -> List[types.Tool]:
            """List available tools"""
            return self.list_tools()

        @self.server.call_tool()
        async def handle_call_tool(name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
            """Handle tool calls"""
            result = await self.dispatch(name, arguments or {})
            return [types.TextContent(
                type="text",
                text=json.dumps(result, indent=2, ensure_ascii=False)
            )]

    async def dispatch(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Run a tool and return its JSON payload; service errors become an error payload"""
        if not self._initialized:
            await self.initialize()

        try:
            if name == "search_web":
                return await self._search_web(arguments)
            if name == "list_engines":
                return {
                    "engines": self.engine.selectors(),
                    "descriptors": [descriptor.to_dict() for descriptor in self.engine.list_engines()],
                }
            if name == "clear_cache":
                return {"cleared": await self.engine.clear_cache()}
        except AllProvidersUnreachable as e:
            logger.error(f"Search error: {e}")
            return {
                "error": str(e),
                "query": arguments.get("q", ""),
                "failed_engines": [error.to_dict() for _, error in e.failures],
                "results": [],
            }
        except MetaSearchError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return {"error": str(e), "query": arguments.get("q", ""), "results": []}

        raise ValueError(f"Unknown tool: {name}")

    async def _search_web(self, args: Dict[str, Any]) -> Dict[str, Any]:
        outcome = await self.engine.search_with_trace(
            args.get("q", ""),
            engine=args.get("engine"),
            page=args.get("page", 1),
            safe=args.get("safe"),
            client_id="mcp",
            fallback=args.get("fallback"),
        )
        logger.info(f"Retour de {len(outcome.results)} résultats pour: {outcome.query.text}")

        trace = outcome.trace()
        trace["timestamp"] = datetime.now(timezone.utc).isoformat()
        return {
            "query": outcome.query.text,
            "engine": outcome.selector,
            "page": outcome.query.page,
            "results": [result.to_dict() for result in outcome.results],
            "trace": trace,
        }

    async def cleanup(self):
        """Nettoyage des ressources"""
        logger.info("Nettoyage des ressources...")
        await self.engine.cleanup()
        logger.info("Nettoyage terminé")

    async def run_server(self):
        """Run the MCP server"""
        logger.info("Starting MCP Meta Search Server...")

        await self.initialize()

        # Run the stdio server
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(read_stream, write_stream, self.server.create_initialization_options())


async def serve():
    """Point d'entrée asynchrone du serveur"""

    # Validation de la configuration
    if not settings.validate_config():
        logger.error("Configuration invalide, arrêt du serveur")
        sys.exit(1)

    search_service = MetaSearchMCPServer()

    try:
        # Interface simple pour test
        if len(sys.argv) > 1 and sys.argv[1] == "test":
            test_query = input("Entrez une requête de test: ")
            if test_query:
                result = await search_service.dispatch("search_web", {"q": test_query})
                print(json.dumps(result, indent=2, ensure_ascii=False))
        else:
            logger.info("Starting MCP server in stdio mode...")
            await search_service.run_server()

    finally:
        await search_service.cleanup()


def main():
    """Point d'entrée principal (console script)"""
    settings.setup_logging()
    asyncio.run(serve())


if __name__ == "__main__":
    main()
