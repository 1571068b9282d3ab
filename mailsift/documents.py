"""Document source: load emails from a directory of files.

Supported formats:

* ``.eml`` - RFC 822 messages; the HTML part is preferred, the plain-text part
  is used when there is no HTML.
* ``.html`` / ``.htm`` - markup only; the ``<title>`` becomes the subject.
* ``.txt`` - plain text.

A document id is the file name, with or without its extension.
"""

from __future__ import annotations

import email
import email.policy
import html
import logging
from pathlib import Path
from typing import Optional, Protocol

from bs4 import BeautifulSoup

from mailsift.errors import FatalInputError
from mailsift.models import Document

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".eml", ".html", ".htm", ".txt")

_BLOCK_TAGS = [
    "p", "div", "br", "tr", "li", "h1", "h2", "h3", "h4", "h5", "h6",
    "table", "blockquote", "section", "article", "hr",
]


class DocumentSource(Protocol):
    def get_document(self, document_id: str) -> Document:
        """Return the document; raise :class:`FatalInputError` if unavailable."""
        ...


def html_to_text(markup: str) -> str:
    """Readable plaintext from email HTML, one paragraph per block element."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style", "head", "noscript"]):
        tag.decompose()
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n\n")
        tag.insert_after("\n\n")
    text = soup.get_text()
    paragraphs = [" ".join(block.split()) for block in text.split("\n\n")]
    return "\n\n".join(p for p in paragraphs if p)


def _text_to_markup(text: str) -> str:
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    return "\n".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)


def _parse_eml(document_id: str, raw: bytes) -> Document:
    message = email.message_from_bytes(raw, policy=email.policy.default)
    html_part = message.get_body(preferencelist=("html",))
    text_part = message.get_body(preferencelist=("plain",))

    if html_part is not None:
        markup = html_part.get_content()
        plaintext = html_to_text(markup)
    elif text_part is not None:
        # RFC 822 bodies keep their CRLF line endings.
        plaintext = text_part.get_content().replace("\r\n", "\n").strip()
        markup = _text_to_markup(plaintext)
    else:
        raise FatalInputError(f"{document_id}: message has no text or HTML body", document_id)

    return Document(
        id=document_id,
        markup=markup,
        plaintext=plaintext,
        subject=str(message.get("Subject", "") or ""),
        sender=str(message.get("From", "") or ""),
    )


def _parse_html(document_id: str, markup: str) -> Document:
    soup = BeautifulSoup(markup, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    return Document(id=document_id, markup=markup, plaintext=html_to_text(markup), subject=title)


def _parse_text(document_id: str, text: str) -> Document:
    return Document(id=document_id, markup=_text_to_markup(text), plaintext=text.strip())


class FileDocumentSource:
    """:class:`DocumentSource` over a directory of ``.eml``/``.html``/``.txt`` files."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    def _locate(self, document_id: str) -> Optional[Path]:
        direct = self._directory / document_id
        # Ids must name a file inside the directory.
        if direct.name != document_id:
            return None
        if direct.is_file() and direct.suffix.lower() in SUPPORTED_SUFFIXES:
            return direct
        for suffix in SUPPORTED_SUFFIXES:
            candidate = self._directory / f"{document_id}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def list_ids(self) -> list[str]:
        if not self._directory.is_dir():
            return []
        return sorted(
            p.stem for p in self._directory.iterdir()
            if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES
        )

    def get_document(self, document_id: str) -> Document:
        path = self._locate(document_id)
        if path is None:
            raise FatalInputError(f"document {document_id!r} not found in {self._directory}", document_id)

        logger.info("[FETCHING_DOCUMENT] loading %s", path)
        try:
            if path.suffix.lower() == ".eml":
                return _parse_eml(document_id, path.read_bytes())
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise FatalInputError(f"document {document_id!r} unreadable: {exc}", document_id) from exc

        if path.suffix.lower() in (".html", ".htm"):
            return _parse_html(document_id, content)
        return _parse_text(document_id, content)


def load_document_file(path: Path | str) -> Document:
    """Load a single file as a document whose id is the file name."""
    path = Path(path)
    return FileDocumentSource(path.parent).get_document(path.name)
