"""
Renders gravel values and compiled rules as CSS text.
"""
from gravel.gravel_datatypes import (
    Dimension, Ident, Boolean, NullValue, ValueList, QuoteKind,
    CssRule, CssDeclaration, CssComment, CssAtRule, DEFAULT_PRECISION
)


class Printer:
    """Formats values into CSS strings, and compiled rules into a stylesheet."""

    def __init__(self, indent_width=2, precision=DEFAULT_PRECISION):
        self._indent_char = " " * indent_width
        self.precision = precision
        self._handlers = self._create_handlers()

    def pformat(self, obj):
        """Public entry point: the CSS text of a value."""
        handler = self._get_handler(obj)
        return handler(obj, False)

    def inspect(self, obj):
        """Like `pformat`, but shows quotes, nulls and list structure."""
        handler = self._get_handler(obj)
        return handler(obj, True)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        return lambda o, inspect: repr(o)

    def _create_handlers(self):
        return {
            Dimension: self._pformat_dimension,
            Ident: self._pformat_ident,
            Boolean: self._pformat_bool,
            NullValue: self._pformat_null,
            ValueList: self._pformat_list,
        }

    def _pformat_dimension(self, obj, inspect):
        return f"{obj.number.format(self.precision)}{obj.unit.name}"

    def _pformat_ident(self, obj, inspect):
        if obj.quotes is QuoteKind.NONE:
            return obj.text
        quote = "'" if '"' in obj.text and "'" not in obj.text else '"'
        text = obj.text.replace(quote, "\\" + quote) if quote in obj.text else obj.text
        return f"{quote}{text}{quote}"

    def _pformat_bool(self, obj, inspect):
        return "true" if obj.value else "false"

    def _pformat_null(self, obj, inspect):
        return "null" if inspect else ""

    def _pformat_list(self, obj, inspect):
        sep = ", " if obj.separator == "," else " "
        if inspect:
            if not obj.items:
                return "()"
            parts = []
            for item in obj.items:
                text = self.inspect(item)
                if isinstance(item, ValueList) and len(item.items) > 1 and item.separator == ",":
                    text = f"({text})"
                parts.append(text)
            return sep.join(parts)
        rendered = (self.pformat(item) for item in obj.items if not isinstance(item, NullValue))
        return sep.join(text for text in rendered if text)

    # --- Stylesheets ---
    def format_css(self, nodes):
        """Renders compiled rules; blocks are separated by one blank line."""
        blocks = []
        for node in nodes:
            match node:
                case CssRule(selector=selector, items=items):
                    if not items:
                        continue
                    lines = [f"{selector} {{"]
                    lines.extend(self._format_item(item) for item in items)
                    lines.append("}")
                    blocks.append("\n".join(lines) + "\n")
                case CssComment(text=text):
                    blocks.append(text + "\n")
                case CssAtRule(text=text):
                    blocks.append(text + ";\n")
        return "\n".join(blocks)

    def _format_item(self, item):
        if isinstance(item, CssDeclaration):
            return f"{self._indent_char}{item.name}: {item.value};"
        return f"{self._indent_char}{item.text}"
