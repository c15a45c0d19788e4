# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP Server Protocol Layer for Title Match Linker.

This module exposes the linker operations as MCP tools with ZERO business
logic. Everything is delegated to TitleLinkerService.
"""

import argparse
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from title_linker.config import Config
from title_linker.errors import TitleLinkerError
from title_linker.log_config import ensure_log_directories, get_default_data_root
from title_linker.run_logger import RunLogger
from title_linker.service import TitleLinkerService
from title_linker.storage import VaultStore

logger = logging.getLogger(__name__)

SERVER_NAME = "title-match-linker"


class TitleLinkerMCPServer:
    """MCP Protocol Layer for Title Match Linker.

    Responsibilities:
    - Initialize MCP server and register tools
    - Translate MCP requests to service calls
    - Format service results as JSON-compatible tool results

    Confirmation of a batch run is the calling agent's job: run_batch only
    proceeds when invoked with confirmed=True.
    """

    def __init__(
        self,
        vault_root: Optional[Path] = None,
        config: Optional[Config] = None,
        service: Optional[TitleLinkerService] = None,
        data_root: Optional[Path] = None,
        session_id: Optional[str] = None,
    ):
        """Initialize MCP server.

        Args:
            vault_root: Vault directory. Defaults to the current directory.
            config: Configuration object. If None, loads from the vault root.
            service: Service layer instance. If None, creates default service.
            data_root: Root directory for run logs. If None, uses ~/.title_match_linker/
            session_id: Session ID for log filenames. If None, generates a UUID.
        """
        self.vault_root = Path(vault_root) if vault_root is not None else Path.cwd()
        if config is None:
            config = Config.for_vault(self.vault_root)
        self.config = config

        self.data_root = data_root or get_default_data_root()
        self.session_id = session_id or str(uuid.uuid4())

        if service is None:
            ensure_log_directories(self.data_root)
            service = TitleLinkerService(
                config=config,
                store=VaultStore(self.vault_root),
                run_logger=RunLogger(
                    session_id=self.session_id,
                    data_root=self.data_root,
                    enabled=config.enable_run_logging,
                ),
            )
        self.service = service

        self.mcp = FastMCP(name=SERVER_NAME)
        self._register_tools()

        logger.info("TitleLinkerMCPServer initialized")

    def _register_tools(self) -> None:
        """Register MCP tools with the server."""

        @self.mcp.tool()
        async def run_batch(
            ctx: Context[ServerSession, None],
            confirmed: bool = False,
            excluded_folders: Optional[List[str]] = None,
        ) -> Dict[str, Any]:
            """Link note-title mentions across the whole vault.

            Every modified note is backed up and stays revertible until the
            changes are accepted. Fails while earlier changes are pending.

            Args:
                confirmed: Must be True; the user has approved the run.
                excluded_folders: Folder prefixes to skip for this run. Defaults
                    to the configured exclusions.
                ctx: MCP context for logging and progress
            """
            await ctx.info("Starting link creation process")

            def confirm(message: str) -> bool:
                logger.info(f"Batch confirmation requested: {message}")
                return confirmed

            try:
                result = self.service.run_batch(exclusions=excluded_folders, confirm=confirm)
            except TitleLinkerError as e:
                await ctx.error(e.message)
                raise

            if result.cancelled:
                await ctx.info("Link creation process not confirmed; nothing was changed")
            else:
                await ctx.info(
                    f"Link creation process completed: {result.links_added} links added "
                    f"across {result.modified_count} notes"
                )
            return result.to_dict()

        @self.mcp.tool()
        async def run_single(path: str, ctx: Context[ServerSession, None]) -> Dict[str, Any]:
            """Link note-title mentions in one note.

            Args:
                path: Vault-relative path of the note
                ctx: MCP context for logging and progress
            """
            try:
                result = self.service.run_single(path)
            except TitleLinkerError as e:
                await ctx.error(e.message)
                raise
            await ctx.info(f"{result.links_added} links added to {path}")
            return result.to_dict()

        @self.mcp.tool()
        async def revert_single(path: str, ctx: Context[ServerSession, None]) -> Dict[str, Any]:
            """Restore one note to its state before linking.

            Args:
                path: Vault-relative path of the note
                ctx: MCP context for logging and progress
            """
            try:
                self.service.revert_single(path)
            except TitleLinkerError as e:
                await ctx.error(e.message)
                raise
            await ctx.info(f"'{path}' has been reverted to its previous state")
            return {"path": path, "reverted": True}

        @self.mcp.tool()
        async def accept_single(path: str, ctx: Context[ServerSession, None]) -> Dict[str, Any]:
            """Keep the links added to one note and drop its backup.

            Args:
                path: Vault-relative path of the note
                ctx: MCP context for logging and progress
            """
            try:
                accepted = self.service.accept_single(path)
            except TitleLinkerError as e:
                await ctx.error(e.message)
                raise
            return {"path": path, "accepted": accepted}

        @self.mcp.tool()
        async def revert_all(ctx: Context[ServerSession, None]) -> Dict[str, Any]:
            """Restore every linked note and delete the review log."""
            result = self.service.revert_all()
            await ctx.info(f"Reversion process completed: {len(result.reverted)} notes reverted")
            for failure in result.failures:
                await ctx.error(failure.message)
            return result.to_dict()

        @self.mcp.tool()
        async def accept_all(
            ctx: Context[ServerSession, None],
            also_delete_log: bool = False,
        ) -> Dict[str, Any]:
            """Keep every added link and delete all backups.

            Args:
                also_delete_log: Also delete the review log and change reports.
                ctx: MCP context for logging and progress
            """
            try:
                count = self.service.accept_all(also_delete_log=also_delete_log)
            except TitleLinkerError as e:
                await ctx.error(e.message)
                raise
            return {"accepted": count, "log_deleted": also_delete_log}

        @self.mcp.tool()
        async def pending_changes() -> Dict[str, Any]:
            """List notes whose changes are neither accepted nor reverted."""
            pending = self.service.pending_changes()
            return {"pending": [change.to_dict() for change in pending]}

        logger.info(
            "MCP tools registered: run_batch, run_single, revert_single, accept_single, "
            "revert_all, accept_all, pending_changes"
        )

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: "stdio" (default), "streamable-http" or "sse".
        """
        logger.info(f"Starting MCP server with {transport} transport")
        self.mcp.run(transport=transport)  # type: ignore[arg-type]

    def shutdown(self) -> None:
        """Shutdown the MCP server and cleanup resources."""
        logger.info("Shutting down MCP server")
        self.service.shutdown()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Title Match Linker MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--vault",
        type=Path,
        default=Path.cwd(),
        help="Vault directory. Default: current directory",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file. Default: <vault>/.title_match_linker.yml",
    )
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help=f"Root directory for run logs. Default: {get_default_data_root()}",
    )
    parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )
    return parser.parse_args(argv)


def main() -> None:
    """Main entry point for the MCP server."""
    args = parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = Config(config_path=args.config) if args.config else None
    server = TitleLinkerMCPServer(vault_root=args.vault, config=config, data_root=args.data_root)
    logger.info(
        f"Starting MCP server for vault={server.vault_root}, session_id={server.session_id}"
    )
    try:
        server.run(transport=args.transport)
    finally:
        server.shutdown()


if __name__ == "__main__":
    main()
