"""Decoders for the directory's XML documents.

Client configuration::

    <settings>
      <client ip="203.0.113.7" lat="35.68" lon="139.69" isp="Example ISP"/>
      <server-config ignoreids="101,202" threadcount="4"/>
    </settings>

Server list::

    <settings>
      <servers>
        <server url="http://host:8080/speedtest/upload.php" lat="35.6" lon="139.7"
                name="Tokyo" country="Japan" cc="JP" sponsor="Example" id="1234"
                host="host:8080"/>
      </servers>
    </settings>
"""

import logging
import xml.etree.ElementTree as ET
from typing import FrozenSet, List, Optional

from speedprobe.api.response import Schema
from speedprobe.directory.models import ClientInfo, Endpoint, EndpointSet
from speedprobe.errors import DecodeError

LOGGER = logging.getLogger(__name__)

CONFIG_SCHEMA_NAME = "client-config"
SERVERS_SCHEMA_NAME = "server-list"

# attribute order used when writing a server list back out
SERVER_ATTRIBUTES = ("url", "lat", "lon", "name", "country", "sponsor", "id", "host")


def _root(content: bytes, schema_name: str) -> ET.Element:
    try:
        return ET.fromstring(content)
    except ET.ParseError as exc:
        raise DecodeError(schema_name, f"malformed XML: {exc}") from exc


def _ids(value: Optional[str]) -> FrozenSet[int]:
    ids = set()
    for token in (value or "").split(","):
        token = token.strip()
        if token.isdigit():
            ids.add(int(token))
    return frozenset(ids)


def parse_client_config(content: bytes) -> ClientInfo:
    """Decode the ``<client>`` block of the configuration document."""
    root = _root(content, CONFIG_SCHEMA_NAME)
    client = root if root.tag == "client" else root.find("client")
    if client is None:
        raise DecodeError(CONFIG_SCHEMA_NAME, "missing <client> element")

    try:
        lat = float(client.attrib["lat"])
        lon = float(client.attrib["lon"])
    except (KeyError, ValueError) as exc:
        raise DecodeError(CONFIG_SCHEMA_NAME, f"invalid client coordinates: {exc}") from exc

    server_config = root.find("server-config")
    ignore_ids = _ids(server_config.get("ignoreids") if server_config is not None else None)

    return ClientInfo(
        ip=client.get("ip", ""),
        lat=lat,
        lon=lon,
        isp=client.get("isp", ""),
        ignore_ids=ignore_ids,
    )


def _endpoint_from(element: ET.Element) -> Optional[Endpoint]:
    try:
        return Endpoint(
            id=int(element.attrib["id"]),
            url=element.attrib["url"],
            lat=float(element.attrib["lat"]),
            lon=float(element.attrib["lon"]),
            name=element.get("name", ""),
            country=element.get("country", ""),
            sponsor=element.get("sponsor", ""),
            host=element.get("host", ""),
        )
    except (KeyError, ValueError) as exc:
        LOGGER.warning("Skipping malformed server entry %s: %s", dict(element.attrib), exc)
        return None


def parse_server_list(content: bytes) -> EndpointSet:
    """Decode the ``<servers>`` block into an ``EndpointSet`` in document order."""
    root = _root(content, SERVERS_SCHEMA_NAME)
    servers = root if root.tag == "servers" else root.find("servers")
    if servers is None:
        raise DecodeError(SERVERS_SCHEMA_NAME, "missing <servers> element")

    endpoints: List[Endpoint] = []
    for element in servers.iter("server"):
        endpoint = _endpoint_from(element)
        if endpoint is not None:
            endpoints.append(endpoint)
    return EndpointSet(endpoints)


def serialize_endpoints(endpoints: EndpointSet) -> bytes:
    """Write the decoded fields of ``endpoints`` back to a server-list document."""
    root = ET.Element("settings")
    servers = ET.SubElement(root, "servers")
    for endpoint in endpoints:
        values = {
            "url": endpoint.url,
            "lat": repr(endpoint.lat),
            "lon": repr(endpoint.lon),
            "name": endpoint.name,
            "country": endpoint.country,
            "sponsor": endpoint.sponsor,
            "id": str(endpoint.id),
            "host": endpoint.host,
        }
        ET.SubElement(servers, "server", {key: values[key] for key in SERVER_ATTRIBUTES})
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


CONFIG_SCHEMA = Schema(CONFIG_SCHEMA_NAME, parse_client_config)
SERVERS_SCHEMA = Schema(SERVERS_SCHEMA_NAME, parse_server_list)


__all__ = [
    "CONFIG_SCHEMA",
    "SERVERS_SCHEMA",
    "parse_client_config",
    "parse_server_list",
    "serialize_endpoints",
]
