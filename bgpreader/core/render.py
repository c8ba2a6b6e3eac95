"""
Line renderers for records and elements.
"""
from .exceptions import RenderError
from .models import Element, ElementType, Record

DEFAULT_ELEMENT_BUFFER_SIZE = 65536


def render_record(record: Record) -> str:
    """Render record metadata as a pipe-delimited line."""
    fields = [
        str(record.time),
        record.project,
        record.collector,
        record.dump_type.value,
        record.status.value,
        str(record.dump_time),
        record.dump_position.value,
    ]
    return "|".join(fields) + "|"


def _field(value: object | None) -> str:
    return "" if value is None else str(value)


def render_element(elem: Element, buffer_size: int = DEFAULT_ELEMENT_BUFFER_SIZE) -> str:
    """
    Render one element as a pipe-delimited line.

    Args:
        elem: Element to render
        buffer_size: Output buffer size in bytes, terminator included

    Returns:
        The rendered line

    Raises:
        RenderError: If the line does not fit the buffer
    """
    line = "|".join(
        [
            elem.type.value,
            str(elem.time),
            elem.peer_address,
            str(elem.peer_asn),
            _field(elem.prefix),
            _field(elem.next_hop),
            _field(elem.as_path),
            _field(elem.origin_asn),
            " ".join(elem.communities),
            _field(elem.old_state),
            _field(elem.new_state),
        ]
    )
    encoded = line.encode("utf-8")
    if len(encoded) > buffer_size - 1:
        truncated = encoded[: max(buffer_size - 1, 0)].decode("utf-8", errors="ignore")
        raise RenderError("Failed to construct elem string", truncated=truncated)
    return line


def _bgpdump_line(elem: Element) -> str:
    communities = " ".join(elem.communities)
    if elem.type == ElementType.RIB:
        return (
            f"TABLE_DUMP2|{elem.time}|B|{elem.peer_address}|{elem.peer_asn}|"
            f"{_field(elem.prefix)}|{_field(elem.as_path)}|{_field(elem.origin)}|{_field(elem.next_hop)}|0|0|{communities}|NAG||"
        )
    if elem.type == ElementType.ANNOUNCEMENT:
        return (
            f"BGP4MP|{elem.time}|A|{elem.peer_address}|{elem.peer_asn}|"
            f"{_field(elem.prefix)}|{_field(elem.as_path)}|{_field(elem.origin)}|{_field(elem.next_hop)}|0|0|{communities}|NAG||"
        )
    if elem.type == ElementType.WITHDRAWAL:
        return f"BGP4MP|{elem.time}|W|{elem.peer_address}|{elem.peer_asn}|{_field(elem.prefix)}"
    return (
        f"BGP4MP|{elem.time}|STATE|{elem.peer_address}|{elem.peer_asn}|"
        f"{_field(elem.old_state)}|{_field(elem.new_state)}"
    )


def render_bgpdump(record: Record) -> list[str]:
    """Render a record's elements in `bgpdump -m` format."""
    return [_bgpdump_line(elem) for elem in record.elements()]
