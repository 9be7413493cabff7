import html
import re
from pathlib import Path

from .interfaces import UnsupportedSource

STYLESHEET = """
body {
  font-family: 'Times New Roman', serif;
  line-height: 1.6;
  margin: 40px;
  color: #333;
}
h1, h2, h3, h4, h5, h6 {
  color: #2c3e50;
  margin-top: 20px;
  margin-bottom: 10px;
}
p {
  margin-bottom: 12px;
  text-align: justify;
}
table {
  border-collapse: collapse;
  width: 100%;
  margin: 20px 0;
}
th, td {
  border: 1px solid #ddd;
  padding: 8px;
  text-align: left;
}
th {
  background-color: #f2f2f2;
  font-weight: bold;
}
ul, ol {
  margin: 10px 0;
  padding-left: 30px;
}
blockquote {
  margin: 20px 0;
  padding: 10px 20px;
  border-left: 4px solid #3498db;
  background-color: #f8f9fa;
}
"""

_BLOCK_END = re.compile(r"<br\s*/?>|</(?:p|div|h[1-6]|li|tr|blockquote|pre|table)\s*>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_NON_TEXT = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_BODY = re.compile(r"<body[^>]*>(.*)</body>", re.IGNORECASE | re.DOTALL)


def _docx_to_html(path: Path) -> str:
    import mammoth

    with path.open("rb") as f:
        result = mammoth.convert_to_html(f)
    return result.value


def document_to_html(input_path: str) -> str:
    """Return the body markup for a source document.

    DOCX goes through mammoth, HTML is taken as-is and plain text is wrapped
    line by line in paragraphs. Other formats raise UnsupportedSource.
    """
    path = Path(input_path)
    suffix = path.suffix.lower()
    if suffix == ".docx":
        return _docx_to_html(path)
    if suffix in {".html", ".htm"}:
        text = path.read_text(encoding="utf-8", errors="replace")
        m = _BODY.search(text)
        return m.group(1) if m else text
    if suffix == ".txt":
        text = path.read_text(encoding="utf-8", errors="replace")
        return "".join(f"<p>{html.escape(line)}</p>" for line in text.splitlines())
    raise UnsupportedSource(f"no markup conversion for '{suffix or path.name}'")


def wrap_document(body: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        "<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<style>{STYLESHEET}</style>\n"
        "</head>\n<body>\n"
        f"{body}\n"
        "</body>\n</html>\n"
    )


def strip_markup(markup: str) -> str:
    """Drop every tag, keeping block boundaries as line breaks."""
    text = _NON_TEXT.sub("", markup)
    text = _BLOCK_END.sub("\n", text)
    text = _TAG.sub("", text)
    return html.unescape(text)
