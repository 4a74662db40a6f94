"""
KML/KMZ coverage map parsing.

Turns raw upload bytes into a GeoJSON-like FeatureCollection (one feature
per ``Placemark``) plus a tally of the geometry types found. The result is
raw: coordinate order and line-to-polygon folding are handled by
:mod:`kml.normalizer`.
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import Any

from lxml import etree

from config import MAX_KML_BYTES
from core.exceptions import (
    EmptyInputError,
    MalformedArchiveError,
    MalformedXMLError,
    NoValidRegionsError,
)
from kml.normalizer import is_closed_line

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
DEFAULT_KMZ_ENTRY = "doc.kml"

GEOMETRY_TAGS = (
    "Polygon",
    "LineString",
    "LinearRing",
    "Point",
    "MultiGeometry",
)

_SINGLE_OF_MULTI = {
    "MultiPolygon": "Polygon",
    "MultiLineString": "LineString",
    "MultiPoint": "Point",
}


def _xml_parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
        remove_comments=True,
    )


def _local(element: Any) -> str:
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


@dataclass
class GeometryTally:
    """Count of placemark geometries by type."""

    polygon: int = 0
    multi_polygon: int = 0
    line_string: int = 0
    closed_line_string: int = 0
    multi_line_string: int = 0
    point: int = 0
    other: int = 0
    missing: int = 0

    @property
    def region_eligible(self) -> int:
        return self.polygon + self.multi_polygon + self.closed_line_string

    def add(self, geometry: dict[str, Any] | None) -> None:
        if geometry is None:
            self.missing += 1
            return
        geom_type = geometry.get("type")
        if geom_type == "Polygon":
            self.polygon += 1
        elif geom_type == "MultiPolygon":
            self.multi_polygon += 1
        elif geom_type == "LineString":
            self.line_string += 1
            if is_closed_line(geometry.get("coordinates")):
                self.closed_line_string += 1
        elif geom_type == "MultiLineString":
            self.multi_line_string += 1
            lines = geometry.get("coordinates") or []
            self.line_string += len(lines)
            self.closed_line_string += sum(1 for line in lines if is_closed_line(line))
        elif geom_type in ("Point", "MultiPoint"):
            self.point += 1
        else:
            self.other += 1

    def summary(self) -> str:
        return (
            f"Encontrados: {self.polygon} Polygon(s), "
            f"{self.multi_polygon} MultiPolygon(s), "
            f"{self.line_string} LineString(s) ({self.closed_line_string} fechada(s)), "
            f"{self.multi_line_string} MultiLineString(s), "
            f"{self.point} Point(s), {self.other} outro(s) tipo(s)."
        )


@dataclass
class ParsedCoverageDocument:
    feature_collection: dict[str, Any]
    tally: GeometryTally
    source_text: str
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Input unwrapping
# ---------------------------------------------------------------------------


def is_archive(data: bytes) -> bool:
    return data[:4] == ZIP_MAGIC


def extract_kml_from_archive(data: bytes, *, max_bytes: int = MAX_KML_BYTES) -> bytes:
    """
    Return the KML document inside a KMZ archive.

    ``doc.kml`` at the archive root wins; otherwise the first ``.kml``
    entry in archive order is used. Entries that inflate past
    ``max_bytes`` are rejected.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            names = [info.filename for info in archive.infolist() if not info.is_dir()]
            entry = next(
                (name for name in names if name.lower() == DEFAULT_KMZ_ENTRY),
                None,
            )
            if entry is None:
                entry = next(
                    (name for name in names if name.lower().endswith(".kml")),
                    None,
                )
            if entry is None:
                raise MalformedArchiveError(
                    "KMZ não contém arquivo .kml (procure doc.kml ou qualquer .kml)",
                    {"entries": names[:20]},
                )
            declared = archive.getinfo(entry).file_size
            if declared > max_bytes:
                raise MalformedArchiveError(
                    "O arquivo .kml dentro do KMZ excede o tamanho máximo permitido.",
                    {"entry": entry, "size": declared, "max_bytes": max_bytes},
                )
            logger.debug("Using KMZ entry %s (%d bytes)", entry, declared)
            # The header size can lie; never inflate past the cap.
            with archive.open(entry) as stream:
                document = stream.read(max_bytes + 1)
            if len(document) > max_bytes:
                raise MalformedArchiveError(
                    "O arquivo .kml dentro do KMZ excede o tamanho máximo permitido.",
                    {"entry": entry, "size": len(document), "max_bytes": max_bytes},
                )
            return document
    except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
        raise MalformedArchiveError(f"Arquivo KMZ corrompido: {exc}") from exc
    except (NotImplementedError, RuntimeError) as exc:
        # zipfile: unsupported compression method, or an encrypted entry
        raise MalformedArchiveError(
            "Método de compressão não suportado ou arquivo KMZ criptografado.",
            {"reason": str(exc)},
        ) from exc


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


# ---------------------------------------------------------------------------
# Geometry extraction
# ---------------------------------------------------------------------------


def parse_coordinates(text: str | None, warnings: list[str]) -> list[list[float]]:
    """Parse a KML ``<coordinates>`` body into positions."""
    positions: list[list[float]] = []
    for chunk in (text or "").split():
        parts = [part for part in chunk.split(",") if part != ""]
        if len(parts) < 2:
            warnings.append(f"Coordenada ignorada: '{chunk[:40]}'")
            continue
        try:
            positions.append([float(part) for part in parts[:3]])
        except ValueError:
            warnings.append(f"Coordenada ignorada: '{chunk[:40]}'")
    return positions


def _coords_of(element: Any, warnings: list[str]) -> list[list[float]]:
    node = element.find("{*}coordinates")
    return parse_coordinates(node.text if node is not None else None, warnings)


def _polygon(element: Any, warnings: list[str]) -> dict[str, Any] | None:
    rings: list[list[list[float]]] = []
    outer = element.find("{*}outerBoundaryIs/{*}LinearRing")
    if outer is None:
        return None
    outer_coords = _coords_of(outer, warnings)
    if not outer_coords:
        return None
    rings.append(outer_coords)
    for inner in element.findall("{*}innerBoundaryIs/{*}LinearRing"):
        inner_coords = _coords_of(inner, warnings)
        if inner_coords:
            rings.append(inner_coords)
    return {"type": "Polygon", "coordinates": rings}


def _geometry(element: Any, warnings: list[str]) -> dict[str, Any] | None:
    name = _local(element)
    if name == "Point":
        coords = _coords_of(element, warnings)
        return {"type": "Point", "coordinates": coords[0]} if coords else None
    if name in ("LineString", "LinearRing"):
        coords = _coords_of(element, warnings)
        return {"type": "LineString", "coordinates": coords} if coords else None
    if name == "Polygon":
        return _polygon(element, warnings)
    if name == "MultiGeometry":
        parts = [
            geometry
            for child in element
            if _local(child) in GEOMETRY_TAGS
            for geometry in [_geometry(child, warnings)]
            if geometry is not None
        ]
        return _merge_parts(parts)
    return None


def _merge_parts(parts: list[dict[str, Any]]) -> dict[str, Any] | None:
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    flattened: list[dict[str, Any]] = []
    for part in parts:
        single = _SINGLE_OF_MULTI.get(part["type"])
        if single is None:
            flattened.append(part)
        else:
            flattened.extend(
                {"type": single, "coordinates": coords} for coords in part["coordinates"]
            )
    parts = flattened
    types = {part["type"] for part in parts}
    if types == {"Polygon"}:
        return {
            "type": "MultiPolygon",
            "coordinates": [part["coordinates"] for part in parts],
        }
    if types == {"LineString"}:
        return {
            "type": "MultiLineString",
            "coordinates": [part["coordinates"] for part in parts],
        }
    if types == {"Point"}:
        return {
            "type": "MultiPoint",
            "coordinates": [part["coordinates"] for part in parts],
        }
    return {"type": "GeometryCollection", "geometries": parts}


def _properties(placemark: Any) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    for tag in ("name", "description"):
        node = placemark.find(f"{{*}}{tag}")
        if node is not None and node.text and node.text.strip():
            properties[tag] = node.text.strip()

    for data in placemark.iterfind(".//{*}ExtendedData/{*}Data"):
        key = data.get("name")
        value = data.find("{*}value")
        if key and value is not None and value.text is not None:
            properties[key] = value.text.strip()
    for simple in placemark.iterfind(".//{*}ExtendedData//{*}SimpleData"):
        key = simple.get("name")
        if key and simple.text is not None:
            properties[key] = simple.text.strip()
    return properties


def _placemark_feature(placemark: Any, warnings: list[str]) -> dict[str, Any]:
    geometry = None
    for child in placemark:
        if _local(child) in GEOMETRY_TAGS:
            geometry = _geometry(child, warnings)
            break
    return {
        "type": "Feature",
        "properties": _properties(placemark),
        "geometry": geometry,
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class KmlParser:
    """Parse KML or KMZ bytes into a raw FeatureCollection."""

    @staticmethod
    def unwrap(data: bytes | str | None) -> bytes:
        """Return the KML document bytes, extracting them from a KMZ if needed."""
        if data is None:
            raise EmptyInputError("KML vazio ou inválido. O arquivo deve conter conteúdo válido.")
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not data or not data.strip():
            raise EmptyInputError("KML vazio ou inválido. O arquivo deve conter conteúdo válido.")
        if is_archive(data):
            data = extract_kml_from_archive(data)
            if not data.strip():
                raise EmptyInputError("O arquivo .kml dentro do KMZ está vazio.")
        return data

    @classmethod
    def parse(cls, data: bytes | str | None) -> ParsedCoverageDocument:
        """
        Parse ``data`` (KML text/bytes or a KMZ archive).

        Raises:
            EmptyInputError: zero-length or non-XML input.
            MalformedArchiveError: KMZ without a KML entry, a broken ZIP, an
                entry too large, compressed with an unsupported method or
                encrypted.
            MalformedXMLError: XML syntax error or a root other than ``<kml>``.
            NoValidRegionsError: no Polygon, MultiPolygon or closed line found.
        """
        document = cls.unwrap(data)
        source_text = _decode(document)
        if not source_text.lstrip().startswith("<"):
            raise EmptyInputError(
                "Arquivo não parece ser um KML válido. Verifique se o arquivo está correto."
            )

        try:
            root = etree.fromstring(document, parser=_xml_parser())
        except etree.XMLSyntaxError as exc:
            raise MalformedXMLError(
                f"Erro ao fazer parse do XML do KML. {str(exc)[:200]}"
            ) from exc

        if root is None or _local(root).lower() != "kml":
            raise MalformedXMLError(
                "Arquivo não é um KML válido. O elemento raiz deve ser <kml>"
            )

        warnings: list[str] = []
        tally = GeometryTally()
        features: list[dict[str, Any]] = []
        for placemark in root.iter("{*}Placemark"):
            feature = _placemark_feature(placemark, warnings)
            tally.add(feature["geometry"])
            features.append(feature)

        if tally.missing:
            warnings.append(f"{tally.missing} feature(s) sem geometria")

        if not features:
            raise NoValidRegionsError(
                [
                    "KML não contém nenhuma geometria válida. Verifique se o "
                    "arquivo possui polígonos ou áreas de cobertura."
                ]
                + warnings
            )

        if tally.region_eligible == 0:
            raise NoValidRegionsError(
                [
                    "KML não contém polígonos ou círculos válidos. "
                    + tally.summary()
                    + " Para cobertura, são necessários polígonos ou "
                    "LineStrings fechadas (círculos)."
                ]
                + warnings
            )

        logger.info(
            "Parsed %d placemark(s): %s",
            len(features),
            tally.summary(),
        )
        return ParsedCoverageDocument(
            feature_collection={"type": "FeatureCollection", "features": features},
            tally=tally,
            source_text=source_text,
            warnings=warnings,
        )
