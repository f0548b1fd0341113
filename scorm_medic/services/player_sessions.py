"""
Player Session Store

Materializes repaired archives into disposable, addressable directories
served for interactive playback. Sessions live until explicitly destroyed.
"""

import logging
import re
import secrets
import shutil
from pathlib import Path
from typing import Optional

from ..models.reports import PlayerSession
from .archive_io import extract_archive
from .content_instrumenter import ContentInstrumenter, shim_snippet
from .errors import FilesystemFailure, InvalidSessionId

logger = logging.getLogger(__name__)

_SESSION_ID = re.compile(r"^[0-9a-f]{8,64}$")


class PlayerSessionStore:
    """Owns the player-sessions area, one directory per session id"""

    def __init__(self, root: Path, instrumenter: Optional[ContentInstrumenter] = None):
        self.root = Path(root)
        self.instrumenter = instrumenter or ContentInstrumenter([shim_snippet()])

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_hex(8)

    def session_dir(self, session_id: str) -> Path:
        if not _SESSION_ID.match(session_id or ""):
            raise InvalidSessionId(f"Invalid session id: {session_id!r}")
        return self.root / session_id

    def exists(self, session_id: str) -> bool:
        return self.session_dir(session_id).is_dir()

    def create(self, repaired_archive: Path, launch_file: Optional[str] = None) -> PlayerSession:
        """
        Extract ``repaired_archive`` into a fresh session directory.

        The API shim is inlined into every HTML file of the session whether
        or not the repair already referenced it; the injection is idempotent.
        """
        session_id = self.new_session_id()
        directory = self.session_dir(session_id)
        try:
            directory.mkdir(parents=True, exist_ok=False)
            extract_archive(repaired_archive, directory)
            self.instrumenter.instrument_tree(directory)
        except OSError as e:
            shutil.rmtree(directory, ignore_errors=True)
            raise FilesystemFailure(f"Failed to materialize session {session_id}: {e}") from e
        except Exception:
            shutil.rmtree(directory, ignore_errors=True)
            raise

        logger.info(f"Created player session {session_id} from {Path(repaired_archive).name}")
        return PlayerSession(sessionId=session_id, directory=str(directory), launchFile=launch_file)

    def destroy(self, session_id: str) -> bool:
        """Remove a session directory; returns False if it was already gone"""
        directory = self.session_dir(session_id)
        if not directory.exists():
            return False
        shutil.rmtree(directory)
        logger.info(f"Destroyed player session {session_id}")
        return True
