# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP Server Protocol Layer for lockprune.

This module exposes lockfile analysis as MCP tools with ZERO business logic.
Every tool loads the requested lockfile into a fresh LockfileAnalysisService
and returns the service's JSON-compatible result.
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from lockprune.config import Config
from lockprune.service import LockfileAnalysisService

logger = logging.getLogger(__name__)

SERVER_NAME = "lockfile-prune"


class LockfileMCPServer:
    """MCP Protocol Layer for lockfile analysis.

    Responsibilities:
    - Initialize MCP server and register tools
    - Translate tool invocations into service calls
    - Return service results as tool results
    """

    def __init__(self, config: Optional[Config] = None):
        """Initialize MCP server.

        Args:
            config: Configuration object. If None, loads from default location.
        """
        if config is None:
            config = Config()
        self.config = config

        self.mcp = FastMCP(name=SERVER_NAME)
        self._register_tools()

        logger.info("LockfileMCPServer initialized")

    def create_service(self, lockfile_path: str) -> LockfileAnalysisService:
        """Fresh service with lockfile_path loaded."""
        service = LockfileAnalysisService(self.config)
        service.load(lockfile_path)
        return service

    def _register_tools(self) -> None:
        """Register MCP tools with the server."""

        @self.mcp.tool()
        async def analyze_lockfile(
            lockfile_path: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Summarize a lockfile: package count, anomalies, collisions, categories.

            Args:
                lockfile_path: Path to the lockfile (e.g. Cargo.lock)
                ctx: MCP context for logging
            """
            await ctx.info(f"Analyzing {lockfile_path}")
            try:
                return self.create_service(lockfile_path).summary()
            except Exception as e:
                await ctx.error(f"Error analyzing {lockfile_path}: {e}")
                raise

        @self.mcp.tool()
        async def compute_closure(
            lockfile_path: str,
            ctx: Context[ServerSession, None],
            roots: Optional[List[str]] = None,
        ) -> Dict[str, Any]:
            """Compute every package transitively required by the root packages.

            Args:
                lockfile_path: Path to the lockfile
                ctx: MCP context for logging
                roots: Root package names (defaults to configured roots)
            """
            await ctx.info(f"Computing closure in {lockfile_path}")
            try:
                return self.create_service(lockfile_path).closure(roots).to_dict()
            except Exception as e:
                await ctx.error(f"Error computing closure for {lockfile_path}: {e}")
                raise

        @self.mcp.tool()
        async def safe_removal(
            lockfile_path: str,
            ctx: Context[ServerSession, None],
            roots: Optional[List[str]] = None,
            output_path: Optional[str] = None,
        ) -> Dict[str, Any]:
            """List packages that can be removed while keeping the lockfile closed.

            Args:
                lockfile_path: Path to the lockfile
                ctx: MCP context for logging
                roots: Root package names (defaults to configured roots)
                output_path: If given, write the pruned lockfile here
            """
            await ctx.info(f"Computing safe removal set for {lockfile_path}")
            try:
                service = self.create_service(lockfile_path)
                result = service.prune(roots)
                response = result.to_dict()
                if output_path:
                    service.write_selection(result.retained, output_path)
                    response["output"] = output_path
                return response
            except Exception as e:
                await ctx.error(f"Error pruning {lockfile_path}: {e}")
                raise

        @self.mcp.tool()
        async def critical_packages(
            lockfile_path: str,
            ctx: Context[ServerSession, None],
            threshold: Optional[int] = None,
        ) -> Dict[str, Any]:
            """Rank packages by how many other packages depend on them.

            Args:
                lockfile_path: Path to the lockfile
                ctx: MCP context for logging
                threshold: Minimum fan-in (exclusive); defaults to configuration
            """
            await ctx.info(f"Ranking packages in {lockfile_path}")
            try:
                return self.create_service(lockfile_path).critical_report(threshold).to_dict()
            except Exception as e:
                await ctx.error(f"Error ranking {lockfile_path}: {e}")
                raise

        @self.mcp.tool()
        async def leaf_packages(
            lockfile_path: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """List packages that no other package depends on.

            Args:
                lockfile_path: Path to the lockfile
                ctx: MCP context for logging
            """
            await ctx.info(f"Finding leaf packages in {lockfile_path}")
            try:
                leaves = sorted(self.create_service(lockfile_path).leaves())
                return {"leaf_count": len(leaves), "leaves": leaves}
            except Exception as e:
                await ctx.error(f"Error finding leaves in {lockfile_path}: {e}")
                raise

        @self.mcp.tool()
        async def export_graph(
            lockfile_path: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Export the full dependency graph of a lockfile.

            Args:
                lockfile_path: Path to the lockfile
                ctx: MCP context for logging

            Returns:
                Packages with their dependencies and dependents, name collisions,
                dangling references and the most depended-on packages
            """
            await ctx.info(f"Exporting dependency graph of {lockfile_path}")
            try:
                return self.create_service(lockfile_path).export_graph()
            except Exception as e:
                await ctx.error(f"Error exporting {lockfile_path}: {e}")
                raise

        logger.info(
            "MCP tools registered: analyze_lockfile, compute_closure, safe_removal, "
            "critical_packages, leaf_packages, export_graph"
        )

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: "stdio" (default), "streamable-http" or "sse"
        """
        logger.info(f"Starting MCP server with {transport} transport")
        self.mcp.run(transport=transport)  # type: ignore[arg-type]


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="lockprune MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file. Default: ./.lockprune.yml",
    )
    parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )
    return parser.parse_args()


def main() -> None:
    """Main entry point for the MCP server."""
    args = parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    server = LockfileMCPServer(config=Config(config_path=args.config))
    server.run(transport=args.transport)


if __name__ == "__main__":
    main()
