"""
Document segmentation.

Splits a chapter's HTML into identifiable structural segments, wraps them
into the envelope sent to the translator, and matches the translated
envelope back onto the source order.

Top-level nodes of the body are walked in order:

- each outermost <section> is a segment, identified by its data-id, then
  its id, then its position among sections
- any other top-level node (a chapter title, a closing paragraph, an
  image) is a block segment, identified by its position among blocks
- an element that merely wraps sections is descended into

Identifiers depend only on the document, so segmenting the same revision
twice always yields the same ids and boundaries.
"""

from __future__ import annotations

import html as html_lib
import re

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag

from folio.core.errors import NonTranslatableError
from folio.core.models import StructuralSegment, TranslatedSegment
from folio.core.utils import sha256_hex

_FENCE = re.compile(r"^\s*```(?:html)?\s*([\s\S]*?)\s*```\s*$", re.IGNORECASE)


def _has_text(fragment: str) -> bool:
    return bool(BeautifulSoup(fragment, "html.parser").get_text(strip=True))


def _unique_ids(raw_ids: list[str]) -> list[str]:
    """
    Disambiguate repeated ids deterministically: intro, intro-2, intro-3.

    Generated suffixes skip any id the document already uses.
    """
    taken = set(raw_ids)
    used: set[str] = set()
    ids: list[str] = []
    for raw in raw_ids:
        seg_id = raw
        if seg_id in used:
            n = 2
            while f"{raw}-{n}" in taken or f"{raw}-{n}" in used:
                n += 1
            seg_id = f"{raw}-{n}"
        used.add(seg_id)
        ids.append(seg_id)
    return ids


def _block_fragment(child) -> str | None:
    if isinstance(child, (Comment, Doctype)):
        return None
    if isinstance(child, NavigableString):
        text = str(child).strip()
        return f"<p>{html_lib.escape(text, quote=False)}</p>" if text else None
    if isinstance(child, Tag) and child.name not in ("head", "script", "style"):
        return str(child)
    return None


def _collect(parent, found: list[tuple[str, str, str]], counters: dict[str, int]) -> None:
    """Walk top-level nodes; sections are kept whole, wrappers around sections are descended."""
    for child in parent.children:
        if isinstance(child, Tag) and child.name == "section":
            index = counters["section"]
            counters["section"] += 1
            raw_id = child.get("data-id") or child.get("id") or f"section-{index}"
            found.append(("section", str(raw_id), child.decode_contents().strip()))
        elif isinstance(child, Tag) and child.find("section") is not None:
            _collect(child, found, counters)
        else:
            fragment = _block_fragment(child)
            if fragment is None:
                continue
            index = counters["block"]
            counters["block"] += 1
            found.append(("block", f"block-{index}", fragment))


def segment_document(document: str) -> list[StructuralSegment]:
    """
    Extract ordered structural segments from a source document.

    Raises:
        NonTranslatableError: the document yields no segment with text
    """
    soup = BeautifulSoup(document or "", "html.parser")
    root = soup.body or soup

    found: list[tuple[str, str, str]] = []
    _collect(root, found, {"section": 0, "block": 0})

    segments = [
        StructuralSegment(id=seg_id, html=fragment, kind=kind, translatable=_has_text(fragment))
        for (kind, _, fragment), seg_id in zip(found, _unique_ids([raw for _, raw, _ in found]))
    ]

    if not any(segment.translatable for segment in segments):
        raise NonTranslatableError("Document contains no translatable text")

    return segments


def combine(segments: list[StructuralSegment]) -> str:
    """
    Build the outbound envelope for the translatable segments.

    Each fragment is wrapped in <section data-id="..."> so the far end can
    echo the identifier back.
    """
    return "\n".join(
        f'<section data-id="{html_lib.escape(segment.id)}">{segment.html}</section>'
        for segment in segments
        if segment.translatable
    )


def content_hash(segments: list[StructuralSegment]) -> str:
    """Hash of the envelope; identical chapters share a hash."""
    return sha256_hex(combine(segments))


def strip_code_fences(text: str) -> str:
    """Remove a ```html ... ``` wrapper some models add around output."""
    match = _FENCE.match(text.strip())
    return match.group(1) if match else text


def parse_envelope(translated_html: str) -> dict[str, str]:
    """
    Recover {segment id: translated fragment} from a translated envelope.

    The first occurrence of an id wins; sections without data-id are ignored.
    """
    soup = BeautifulSoup(strip_code_fences(translated_html or ""), "html.parser")
    fragments: dict[str, str] = {}
    for section in soup.find_all("section", attrs={"data-id": True}):
        seg_id = str(section["data-id"])
        if seg_id not in fragments:
            fragments[seg_id] = section.decode_contents().strip()
    return fragments


def reassemble(
    segments: list[StructuralSegment],
    translated: list[TranslatedSegment],
) -> str:
    """
    Rebuild a translated document in source order.

    Non-translatable segments are emitted verbatim. A translatable segment
    without a translation falls back to its source fragment.
    """
    by_id = {seg.id: seg.html for seg in translated}
    parts: list[str] = []
    for segment in segments:
        fragment = by_id.get(segment.id, segment.html) if segment.translatable else segment.html
        if segment.kind == "section":
            parts.append(
                f'<section data-id="{html_lib.escape(segment.id)}">{fragment}</section>'
            )
        else:
            parts.append(fragment)
    return "\n".join(parts)
