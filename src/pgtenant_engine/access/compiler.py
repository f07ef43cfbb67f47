"""Access-control compiler — regenerate the managed region of pg_hba.conf."""

import asyncio
import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

from pgtenant_engine.access.rules import (
    group_rows,
    parse_managed_rules,
    render_managed_region,
    splice_managed_region,
)
from pgtenant_engine.common.config import PgTenantSettings
from pgtenant_engine.common.exceptions import (
    ConfigWriteError,
    OperationTimeoutError,
    PgTenantError,
    ReloadError,
)
from pgtenant_engine.common.timeouts import with_timeout
from pgtenant_engine.engine.admin import AdminEngine
from pgtenant_engine.tenants.store import MetadataStore

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    path: str
    tenants: int
    rules: int
    changed: bool


class EngineReloader:
    """Signal the server with ``SELECT pg_reload_conf()``."""

    def __init__(self, admin: AdminEngine):
        self.admin = admin

    async def reload(self) -> None:
        await self.admin.reload_configuration()


class CommandReloader:
    """Run an operator-supplied command, e.g. ``sudo systemctl reload postgresql``."""

    def __init__(self, command: str, timeout: float):
        self.argv = shlex.split(command)
        self.timeout = timeout

    async def reload(self) -> None:
        await asyncio.to_thread(
            subprocess.run,
            self.argv,
            check=True,
            capture_output=True,
            timeout=self.timeout or None,
        )


def build_reloader(settings: PgTenantSettings, admin: AdminEngine):
    if settings.hba_reload_command:
        return CommandReloader(settings.hba_reload_command, settings.reload_timeout)
    return EngineReloader(admin)


class AccessControlCompiler:
    """Rebuild the managed region from metadata, install it atomically, reload.

    Calls are serialized: the metadata read, the file read-modify-rename and
    the reload all happen under one lock so a slower writer can never
    overwrite content generated from newer state.
    """

    def __init__(self, settings: PgTenantSettings, store: MetadataStore, reloader):
        self.settings = settings
        self.store = store
        self.reloader = reloader
        self.path = Path(settings.hba_path)
        self._lock = asyncio.Lock()

    async def recompile(self) -> CompileResult:
        """Regenerate the file and signal a reload.

        Raises ConfigCorruptedError (file untouched), ConfigWriteError, or
        ReloadError (file already correct on disk).
        """
        async with self._lock:
            rows = await with_timeout(
                self._load_rows(), self.settings.store_timeout, "load access rules",
            )
            groups = [g for g in group_rows(rows) if g.addresses]
            region = render_managed_region(groups, self.settings.hba_auth_method)

            content = await self._io(self._read, "read access-control file")
            updated = splice_managed_region(
                content, region,
                self.settings.hba_start_marker, self.settings.hba_end_marker,
            )
            changed = updated != content
            if changed:
                await self._io(lambda: self._write_atomic(updated), "write access-control file")

            await self._reload()

            result = CompileResult(
                path=str(self.path),
                tenants=len(groups),
                rules=sum(len(g.addresses) + 2 for g in groups),
                changed=changed,
            )
            logger.info(
                "Access-control file compiled and reloaded",
                extra={"path": result.path, "tenants": result.tenants,
                       "rules": result.rules, "changed": result.changed},
            )
            return result

    async def installed_rules(self):
        """Rules currently present in the managed region on disk."""
        content = await self._io(self._read, "read access-control file")
        return parse_managed_rules(
            content, self.settings.hba_start_marker, self.settings.hba_end_marker,
        )

    # ── Internal helpers ──

    async def _load_rows(self):
        async with self.store.unit_of_work() as session:
            return await self.store.list_access_rules(session)

    async def _io(self, func, operation: str):
        """Run blocking file work in a thread, bounded by ``file_timeout``.

        A thread cannot be cancelled, so on timeout this still waits for it
        to finish. Callers hold the lock, and a late write must land before
        the lock is released.
        """
        task = asyncio.ensure_future(asyncio.to_thread(func))
        try:
            return await with_timeout(
                asyncio.shield(task), self.settings.file_timeout, operation,
            )
        except OSError as exc:
            raise ConfigWriteError(f"Failed to {operation} {self.path}: {exc}") from exc
        except OperationTimeoutError as exc:
            await asyncio.wait([task])
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "Timed-out file operation also failed",
                    extra={"path": str(self.path), "error": str(task.exception())},
                )
            raise ConfigWriteError(f"Failed to {operation} {self.path}: {exc.message}") from exc

    def _read(self) -> str:
        # newline="" keeps line endings exactly as they are on disk
        with open(self.path, "r", encoding="utf-8", newline="") as fh:
            return fh.read()

    def _write_atomic(self, content: str) -> None:
        directory = self.path.parent
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=directory,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(content)
                fh.flush()
                os.fsync(fh.fileno())
            shutil.copymode(self.path, tmp_path)
            if hasattr(os, "geteuid") and os.geteuid() == 0:
                st = os.stat(self.path)
                os.chown(tmp_path, st.st_uid, st.st_gid)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    async def _reload(self) -> None:
        try:
            await with_timeout(
                self.reloader.reload(), self.settings.reload_timeout, "reload configuration",
            )
        except (PgTenantError, OSError, subprocess.SubprocessError) as exc:
            message = getattr(exc, "message", None) or str(exc)
            raise ReloadError(
                f"Access-control file written but reload failed: {message}"
            ) from exc
