"""Shareable links pointing family members at the event log."""

import logging
from urllib.parse import urlencode, urlsplit, urlunsplit

from .sync.repository import DEFAULT_NAMESPACE

logger = logging.getLogger(__name__)

SHARE_PARAM = "gun-path"


def generate_share_link(page_url: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Build a link to the page that names the shared namespace.

    The page's query string and fragment are dropped. The link carries no
    credentials; anyone holding it can read the log.
    """
    parts = urlsplit(page_url)
    query = urlencode({SHARE_PARAM: namespace}, safe="/")
    link = urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))
    logger.debug(f"Generated share link: {link}")
    return link
