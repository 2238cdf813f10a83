"""
DOM Data Collection - Fetches the live document from Chrome and runs the
search and print operations over it.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from browser_mcp.core.errors import ElementNotFoundError
from browser_mcp.core.serialization import print_subtree, search_tree
from browser_mcp.core.tree import DomNode, find_node

if TYPE_CHECKING:
    from browser_mcp.cdp.client import CDPClient

logger = logging.getLogger("browser_mcp")

# Default timeout for DOM operations
DEFAULT_DOM_TIMEOUT = 30.0


async def get_document(client: "CDPClient", timeout: float = DEFAULT_DOM_TIMEOUT,
                       *, depth: int = -1) -> Dict[str, Any]:
    """
    Fetch the document node tree of the active page.

    The tree pierces shadow roots and in-process frame documents so the
    whole reachable DOM comes back in a single round trip.

    Args:
        client: CDPClient instance.
        timeout: Maximum time to wait (seconds).
        depth: Subtree depth to fetch; -1 for the entire tree.

    Returns:
        The ``root`` document node payload.
    """
    try:
        result = await asyncio.wait_for(
            client.send("DOM.getDocument", {"depth": depth, "pierce": depth != 0}),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.error(f"DOM.getDocument timed out after {timeout}s")
        raise
    return result.get("root", {})


async def query_selector(client: "CDPClient", selector: str,
                         root_node_id: Optional[int] = None) -> int:
    """
    Resolve ``selector`` to the node ID of its first match in document order.

    Raises:
        ElementNotFoundError: If nothing matches.
    """
    if root_node_id is None:
        root = await get_document(client, depth=0)
        root_node_id = root.get("nodeId", 0)

    result = await client.send("DOM.querySelector", {"nodeId": root_node_id, "selector": selector})
    node_id = result.get("nodeId", 0)
    if not node_id:
        raise ElementNotFoundError(selector, method="DOM.querySelector")
    return node_id


async def search_html(client: "CDPClient", query: str) -> str:
    """
    Search the active page body for ``query`` and return the pruned tree.

    Never fails because nothing matched; a page without a body yields "".
    """
    document = DomNode.from_document(await get_document(client))
    body = document.body
    if body is None:
        logger.debug("Document has no body, nothing to search")
    return search_tree(body, query)


async def print_element(client: "CDPClient", selector: str) -> str:
    """
    Return the full serialization of the first element matching ``selector``.

    Raises:
        ElementNotFoundError: If the selector matches no element.
    """
    payload = await get_document(client)
    node_id = await query_selector(client, selector, root_node_id=payload.get("nodeId", 0))

    document = DomNode.from_document(payload)
    element = find_node(document, node_id)
    if element is None:
        logger.debug(
            "Selector match missing from fetched tree, describing node",
            extra={"selector": selector, "node_id": node_id},
        )
        described = await client.send("DOM.describeNode", {"nodeId": node_id, "depth": -1, "pierce": True})
        element = DomNode(described.get("node", {}), document.origin)
    return print_subtree(element)
