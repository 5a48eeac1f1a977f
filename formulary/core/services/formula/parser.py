"""
Formula DSL — parse ``Formula/*.rb`` into a :class:`Formula` and back (pure).

Only the declarative subset a binary formula uses is understood::

    class Ecsfgrun < Formula
      desc "..."
      homepage "..."
      url "..."
      version "..."
      sha256 "..."

      def install
        bin.install "ecsfgrun"
      end

      test do
        system "#{bin}/ecsfgrun -v"
      end
    end

``render_formula(parse_formula(text))`` reproduces that layout. The class
name cannot carry every formula name (``a_b`` and ``a-b`` both render as
``AB``), so the name comes from the file: ``parse_formula(render_formula(f),
name=f.name) == f`` for every formula.
No I/O, no subprocess.
"""

from __future__ import annotations

import logging
import re

from formulary.core.errors import MalformedManifest
from formulary.core.models.formula import Formula, InstallStep, name_for_class

logger = logging.getLogger(__name__)

_STR = r'"((?:[^"\\]|\\.)*)"'

_CLASS_RE = re.compile(r"^class\s+([A-Z][A-Za-z0-9]*)\s*<\s*Formula\s*$")
_FIELD_RE = re.compile(r"^(desc|homepage|url|version|sha256)\s+" + _STR + r"\s*$")
_INSTALL_RE = re.compile(r"^([a-z_]+)\.install\s+(.+)$")
_SYSTEM_RE = re.compile(r"^system\s+" + _STR + r"\s*$")
_ARG_RE = re.compile(_STR)

# Field order in the rendered file
_FIELDS = ("desc", "homepage", "url", "version", "sha256")


# Escapes written by render_formula, as Ruby double-quoted strings read them
_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r"}
_UNESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", lambda m: _UNESCAPES.get(m.group(1), m.group(1)), value)


def _escape(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)

def parse_formula(text: str, *, name: str | None = None) -> Formula:
    """Parse formula source text.

    Args:
        text: Contents of a ``.rb`` formula file.
        name: Formula name. Derived from the class name when omitted
            (``FooBar`` → ``foo-bar``).

    Returns:
        The parsed formula. Field values are not validated here.

    Raises:
        MalformedManifest: If the text is not a formula or a required
            field is missing.
    """
    class_name: str | None = None
    fields: dict[str, str] = {}
    install: list[InstallStep] = []
    test: list[str] = []
    block: str | None = None

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        if block is not None:
            if line == "end":
                block = None
                continue
            if block == "install":
                m = _INSTALL_RE.match(line)
                if not m:
                    raise MalformedManifest(
                        "install", f"line {lineno}: unsupported install statement: {line}"
                    )
                category, args = m.groups()
                sources = [_unescape(a) for a in _ARG_RE.findall(args)]
                if not sources:
                    raise MalformedManifest(
                        "install", f"line {lineno}: {category}.install needs a file name"
                    )
                install.extend(InstallStep(source=s, destination=category) for s in sources)
            else:
                m = _SYSTEM_RE.match(line)
                if not m:
                    raise MalformedManifest(
                        "test", f"line {lineno}: unsupported test statement: {line}"
                    )
                test.append(_unescape(m.group(1)))
            continue

        if class_name is None:
            m = _CLASS_RE.match(line)
            if not m:
                raise MalformedManifest(
                    "class", f"line {lineno}: expected 'class <Name> < Formula'"
                )
            class_name = m.group(1)
            continue

        if line == "def install":
            block = "install"
        elif line == "test do":
            block = "test"
        elif line == "end":
            # closes the class; anything after is ignored
            break
        else:
            m = _FIELD_RE.match(line)
            if not m:
                keyword = line.split(None, 1)[0]
                if keyword in _FIELDS:
                    raise MalformedManifest(
                        keyword, f"line {lineno}: '{keyword}' needs one quoted string: {line}"
                    )
                logger.debug("Ignoring unsupported formula line %d: %s", lineno, line)
                continue
            fields[m.group(1)] = _unescape(m.group(2))

    if class_name is None:
        raise MalformedManifest("class", "no 'class <Name> < Formula' declaration")
    if block is not None:
        raise MalformedManifest(block, f"unterminated '{block}' block")

    for required in ("url", "version", "sha256"):
        if required not in fields:
            raise MalformedManifest(required, f"missing required field '{required}'")

    return Formula(
        name=name or name_for_class(class_name),
        desc=fields.get("desc", ""),
        homepage=fields.get("homepage", ""),
        url=fields["url"],
        version=fields["version"],
        sha256=fields["sha256"],
        install=install,
        test=test,
    )


def render_formula(formula: Formula, *, class_name: str | None = None) -> str:
    """Render a formula back to DSL source.

    Args:
        formula: The formula to render.
        class_name: Override the Ruby class name (archived revisions use
            ``Formula.versioned_class_name``).
    """
    lines = [f"class {class_name or formula.class_name} < Formula"]
    for key in _FIELDS:
        value = getattr(formula, key)
        if key in ("desc", "homepage") and not value:
            continue
        lines.append(f'  {key} "{_escape(value)}"')

    lines.append("")
    lines.append("  def install")
    for step in formula.install:
        lines.append(f'    {step.destination}.install "{_escape(step.source)}"')
    lines.append("  end")

    if formula.test:
        lines.append("")
        lines.append("  test do")
        for command in formula.test:
            lines.append(f'    system "{_escape(command)}"')
        lines.append("  end")

    lines.append("end")
    return "\n".join(lines) + "\n"
