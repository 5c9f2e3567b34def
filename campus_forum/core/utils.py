import re
from html import unescape
from functools import wraps

import bleach
import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor
from flask import current_app, flash, redirect, request, url_for
from flask_login import current_user
from markupsafe import Markup

FENCED_CODE_RE = re.compile(r"```[\s\S]*?```")
INDENTED_CODE_RE = re.compile(r"^(?: {4}|\t).+$", re.M)
ATX_HEADING_RE = re.compile(r"^(#{1,3})\s+(.+?)(?:\s+#+)?$", re.M)

ALLOWED_TAGS = [
    "a", "abbr", "b", "blockquote", "br", "code", "del", "em", "h1", "h2",
    "h3", "h4", "h5", "h6", "hr", "i", "img", "li", "ol", "p", "pre", "s",
    "strong", "table", "tbody", "td", "th", "thead", "tr", "ul",
]
ALLOWED_ATTRS = {
    "a": ["href", "title", "rel", "target"],
    "img": ["src", "alt", "title"],
    "h1": ["id"],
    "h2": ["id"],
    "h3": ["id"],
    "th": ["align"],
    "td": ["align"],
}
ALLOWED_PROTOCOLS = ["http", "https", "mailto"]


def allowed_file(filename):
    return (
        "." in filename
        and filename.rsplit(".", 1)[0] != ""
        and filename.rsplit(".", 1)[1].lower()
        in current_app.config["ALLOWED_EXTENSIONS"]
    )


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            flash("You need to be logged in to access this page.", "danger")
            return redirect(url_for("core.login", next=request.url))
        return f(*args, **kwargs)

    return decorated_function


def admin_page_required(f):
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            flash(
                "You do not have permission to access this page. Admin access required.",
                "danger",
            )
            return redirect(url_for("core.index"))
        return f(*args, **kwargs)

    return decorated_function


def slugify(text):
    """Anchor slug for a heading: lowercase, word characters kept, spaces
    and underscores collapsed to single hyphens."""
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    return slug.strip("-")


def extract_headings(source):
    """
    Returns the H1-H3 ATX headings of a markdown document as dicts with
    ``id``, ``text`` and ``level``, skipping anything inside code blocks.
    Repeated slugs get ``-1``, ``-2``... suffixes.
    """
    if not source:
        return []

    text = FENCED_CODE_RE.sub("", source)
    text = INDENTED_CODE_RE.sub("", text)

    headings = []
    seen = {}
    for match in ATX_HEADING_RE.finditer(text):
        heading_text = match.group(2).strip()
        anchor = slugify(heading_text) or "heading"
        count = seen.get(anchor, 0)
        if count > 0:
            anchor = f"{anchor}-{count}"
        seen[re.sub(r"-\d+$", "", anchor)] = count + 1
        headings.append(
            {"id": anchor, "text": heading_text, "level": len(match.group(1))}
        )
    return headings


def _heading_keys(text):
    """Slugs a table-of-contents entry may render as: the raw source text,
    and the text left once its inline markdown is rendered."""
    rendered = bleach.clean(markdown.markdown(text), tags=[], strip=True)
    return {slugify(unescape(text)), slugify(unescape(rendered))}


class HeadingAnchorTreeprocessor(Treeprocessor):
    """
    Gives rendered h1-h3 elements the ids listed in the table of contents.

    Elements are matched to entries by level and text, in document order, so
    headings the table of contents does not list (setext, quoted, nested in
    lists) stay without an id instead of taking a later heading's anchor.
    """

    def __init__(self, md_inst, headings):
        super().__init__(md_inst)
        self.headings = headings

    def run(self, root):
        pending = [
            (f"h{heading['level']}", _heading_keys(heading["text"]), heading["id"])
            for heading in self.headings
        ]
        for element in root.iter():
            if not pending:
                break
            if element.tag not in ("h1", "h2", "h3"):
                continue
            key = slugify(unescape("".join(element.itertext()).strip()))
            for index, (tag, keys, anchor) in enumerate(pending):
                if tag == element.tag and key in keys:
                    element.set("id", anchor)
                    del pending[index]
                    break


class HeadingAnchorExtension(Extension):
    def __init__(self, headings, **kwargs):
        self.headings = headings
        super().__init__(**kwargs)

    def extendMarkdown(self, md_inst):
        md_inst.treeprocessors.register(
            HeadingAnchorTreeprocessor(md_inst, self.headings), "heading_anchor", 5
        )


def render_markdown(source, headings=None):
    """Renders post markdown to sanitized HTML with anchored headings."""
    if not source:
        return Markup("")
    if headings is None:
        headings = extract_headings(source)
    html = markdown.markdown(
        source,
        extensions=["fenced_code", "tables", "sane_lists", HeadingAnchorExtension(headings)],
    )
    clean = bleach.clean(
        html,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRS,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )
    return Markup(clean)


def plain_excerpt(source, length=160):
    """Markdown stripped to plain text, cut to ``length`` characters."""
    text = bleach.clean(markdown.markdown(source or ""), tags=[], strip=True)
    text = re.sub(r"\s+", " ", unescape(text)).strip()
    if len(text) <= length:
        return text
    return text[: length - 3].rstrip() + "..."
