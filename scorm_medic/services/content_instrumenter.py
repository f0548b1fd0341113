"""
Content Instrumenter

Idempotently inlines instrumentation snippets (SCORM API shim, event
tracker) into every HTML document of an extracted package.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.reports import InstrumentationResult
from .archive_io import extract_archive, iter_html_files, pack_directory, relative_posix, working_directory

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
SHIM_SCRIPT = "scorm-api-shim.js"
TRACKER_SCRIPT = "scorm-event-tracker.js"
SHIM_MARKER = "SCORM API Shim (inlined)"
TRACKER_MARKER = "SCORM Event Tracker (inlined)"

_HEAD_OPEN = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)


@dataclass(frozen=True)
class Snippet:
    """Markup to inject, detectable afterwards by ``marker``"""
    name: str
    marker: str
    markup: str

    @classmethod
    def inline_script(cls, name: str, marker: str, source: str) -> "Snippet":
        markup = f"<script>\n/* === {marker} === */\n{source}\n</script>\n"
        return cls(name=name, marker=marker, markup=markup)

    @classmethod
    def script_reference(cls, src: str) -> "Snippet":
        marker = src.rstrip("/").rsplit("/", 1)[-1]
        return cls(name=marker, marker=marker, markup=f'<script src="{src}"></script>\n')


def insert_into_head(html: str, block: str) -> str:
    """
    Insert ``block`` right after the opening head tag, else right before
    the closing head tag, else at the very start of the document.
    """
    match = _HEAD_OPEN.search(html)
    if match:
        return html[:match.end()] + "\n" + block + html[match.end():]
    match = _HEAD_CLOSE.search(html)
    if match:
        return html[:match.start()] + block + html[match.start():]
    return block + html


def read_markup(path: Path) -> str:
    # surrogateescape keeps non-UTF-8 bytes intact across a read/write cycle
    return path.read_bytes().decode("utf-8", errors="surrogateescape")


def write_markup(path: Path, text: str) -> None:
    path.write_bytes(text.encode("utf-8", errors="surrogateescape"))


def load_script(filename: str) -> str:
    return (STATIC_DIR / filename).read_text(encoding="utf-8")


def shim_snippet() -> Snippet:
    return Snippet.inline_script("shim", SHIM_MARKER, load_script(SHIM_SCRIPT))


def tracker_snippet() -> Snippet:
    return Snippet.inline_script("tracker", TRACKER_MARKER, load_script(TRACKER_SCRIPT))


def default_snippets() -> List[Snippet]:
    """Shim first so the tracker finds the API it wraps"""
    return [shim_snippet(), tracker_snippet()]


class ContentInstrumenter:
    """Injects a fixed, ordered set of snippets into markup documents"""

    def __init__(self, snippets: Optional[Sequence[Snippet]] = None):
        self.snippets: Tuple[Snippet, ...] = tuple(
            snippets if snippets is not None else default_snippets()
        )

    def instrument_html(self, html: str) -> Tuple[str, List[str]]:
        """
        Return the document with every missing snippet inserted, and the
        names of the snippets that were applied.

        Missing snippets are inserted as one block so their relative order
        is preserved in the document.
        """
        missing = [s for s in self.snippets if s.marker not in html]
        if not missing:
            return html, []
        block = "".join(s.markup for s in missing)
        return insert_into_head(html, block), [s.name for s in missing]

    def instrument_file(self, path: Path) -> List[str]:
        html = read_markup(path)
        updated, applied = self.instrument_html(html)
        if applied:
            write_markup(path, updated)
        return applied

    def instrument_tree(self, root: Path) -> InstrumentationResult:
        """Instrument every HTML document below ``root``; other files are untouched"""
        root = Path(root)
        result = InstrumentationResult()
        injections: Dict[str, int] = {s.name: 0 for s in self.snippets}

        for path in iter_html_files(root):
            result.filesScanned += 1
            try:
                applied = self.instrument_file(path)
            except OSError as e:
                rel = relative_posix(path, root)
                logger.warning("Could not instrument %s: %s", rel, e)
                result.failed.append(rel)
                continue
            if applied:
                result.filesModified += 1
                for name in applied:
                    injections[name] += 1

        result.injections = injections
        logger.info(
            "Instrumented %d of %d HTML file(s) under %s",
            result.filesModified, result.filesScanned, root,
        )
        return result

    def build_instrumented_archive(self, archive_path: Path, output_path: Path) -> Path:
        """
        Build a fully instrumented copy of ``archive_path`` at ``output_path``.

        Works on its own extraction, never on a repair output.
        """
        with working_directory("scorm_updated_") as work_dir:
            extract_archive(archive_path, work_dir)
            self.instrument_tree(work_dir)
            return pack_directory(work_dir, output_path)
