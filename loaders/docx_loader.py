from pathlib import Path
from typing import List, Optional, TypedDict

from docx import Document as DocxDocument
from docx.table import Table


class Node(TypedDict, total=False):
    text: Optional[str]
    children: List["Node"]


def _container_nodes(container) -> List[Node]:
    """Paragraphs and tables of a document body or table cell, in reading order."""
    nodes: List[Node] = []
    for block in container.iter_inner_content():
        if isinstance(block, Table):
            nodes.append({"children": _table_rows(block)})
        else:
            nodes.append({"text": block.text})
    return nodes


def _table_rows(table: Table) -> List[Node]:
    # row.cells repeats a merged cell once per grid column it spans
    seen = set()
    rows: List[Node] = []
    for row in table.rows:
        cells: List[Node] = []
        for cell in row.cells:
            if cell._tc in seen:
                continue
            seen.add(cell._tc)
            cells.append({"children": _container_nodes(cell)})
        rows.append({"children": cells})
    return rows


def build_tree(path: Path) -> Node:
    doc = DocxDocument(str(path))
    return {"children": _container_nodes(doc)}


def walk_text(node: Node) -> str:
    """Depth-first: each node's own text plus newline, then its children."""
    out = ""
    if node.get("text") is not None:
        out += node["text"] + "\n"
    for child in node.get("children") or []:
        out += walk_text(child)
    return out


def load_docx(path: Path) -> str:
    return walk_text(build_tree(path)).strip()
