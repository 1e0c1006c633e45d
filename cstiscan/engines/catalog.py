"""
Template engine signature catalog.

Three parallel tables keyed by engine id (detection probes, injection
payloads, reflected patterns) are joined into immutable EngineSignature
records at import time. A key mismatch between the tables raises
CatalogError when this module loads, so an unrecognized engine can never
surface later as a silent lookup miss.

Table order is the fingerprinting probe order and must stay stable.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional, Union

from cstiscan.core.exceptions import CatalogError, UnknownEngineError

# Evaluated result of 12345*54321
COMPUTED_RESULT = "670592745"
OBJECT_MARKER_PATTERN = r"\[object Object\]"


class EngineId(str, Enum):
    ANGULAR = "angular"
    VUE = "vue"
    MAVO = "mavo"
    HANDLEBARS = "handlebars"
    REGULAR = "regular"
    TEMPLATE7 = "template7"
    EJS = "ejs"
    MARKO = "marko"
    TMPL = "tmpl"
    EMBER = "ember"
    JSRENDER = "jsrender"
    DOT = "dot"
    ART_TEMPLATE = "art-template"
    TEMPO = "tempo"
    TRANSPARENCY = "transparency"
    SVELTE = "svelte"
    UNDERSCORE = "underscore"
    LIT = "lit"
    MUSTACHE = "mustache"
    HOGAN = "hogan"
    TWIG = "twig"
    MARKUP = "markup"
    DUST = "dust"
    NUNJUCKS = "nunjucks"
    PUG = "pug"
    LOAD_TEMPLATE = "loadTemplate"
    PURE = "pure"
    SQUIRRELLY = "squirrelly"
    SWIG = "swig"
    ICANHAZ = "icanhaz"
    MICRO_TEMPLATE = "micro-template"
    JUICER = "juicer"
    ALPINE = "alpine"

    @classmethod
    def parse(cls, value: Union[str, "EngineId"]) -> "EngineId":
        """Strict lookup by id; raises UnknownEngineError on a miss."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownEngineError(str(value)) from None


class ReflectionMode(str, Enum):
    COMPUTED = "computed"  # arithmetic result appears in markup
    MARKER = "marker"      # engine stringified an object


# Global expression whose existence (typeof !== 'undefined') reveals the engine
DETECTION_PROBES: Dict[str, str] = {
    "angular": "angular.version",
    "vue": "Vue",
    "mavo": "Mavo",
    "handlebars": "Handlebars",
    "regular": "Regular",
    "template7": "Template7",
    "ejs": "ejs",
    "marko": "Marko",
    "tmpl": "$.tmpl",
    "ember": "Ember",
    "jsrender": "jsrender",
    "dot": "doT",
    "art-template": "template",
    "tempo": "Tempo",
    "transparency": "Transparency",
    "svelte": "__svelte",
    "underscore": "_.template",
    "lit": "litHtmlVersions",
    "mustache": "Mustache",
    "hogan": "Hogan",
    "twig": "Twig",
    "markup": "Markup",
    "dust": "dust",
    "nunjucks": "nunjucks",
    "pug": "pug",
    "loadTemplate": "loadTemplate",
    "pure": "$p",
    "squirrelly": "Sqrl",
    "swig": "swig",
    "icanhaz": "ich",
    "micro-template": "template",
    "juicer": "Juicer",
    "alpine": "Alpine",
}

PAYLOADS: Dict[str, str] = {
    "angular": "{{12345*54321}}",
    "vue": "{{12345*54321}}",
    "mavo": "[12345*54321]",
    "handlebars": "{{this}}",
    "regular": "{12345*54321}",
    "template7": "{{js \"12345*54321\"}}",
    "ejs": "<%=12345*54321%>",
    "marko": "${12345*54321}",
    "tmpl": "${12345*54321}",
    "ember": "{{12345*54321}}",
    "jsrender": "{{:12345*54321}}",
    "dot": "{{=12345*54321}}",
    "art-template": "{{12345*54321}}",
    "tempo": "{{this}}",
    "transparency": "Transparency",
    "svelte": "{12345*54321}",
    "underscore": "<%=12345*54321%>",
    "lit": "${12345*54321}",
    "mustache": "{{.}}",
    "hogan": "6705{{!comment}}92745",
    "twig": "{{12345*54321}}",
    "markup": "{{.}}",
    "dust": "{{.}}",
    "nunjucks": "{{12345*54321}}",
    "pug": "#{12345*54321}",
    "loadTemplate": "$('test').loadTemplate",
    "pure": "#{12345*54321}",
    "squirrelly": "Sqrl",
    "swig": "{{12345*54321}}",
    "icanhaz": "6705{{!comment}}92745",
    "micro-template": "{{12345*54321}}",
    "juicer": "${12345*54321}}",
    "alpine": "12345*54321",
}

REFLECTION_PATTERNS: Dict[str, str] = {
    "angular": COMPUTED_RESULT,
    "vue": COMPUTED_RESULT,
    "mavo": COMPUTED_RESULT,
    "handlebars": OBJECT_MARKER_PATTERN,
    "regular": COMPUTED_RESULT,
    "template7": COMPUTED_RESULT,
    "ejs": COMPUTED_RESULT,
    "marko": COMPUTED_RESULT,
    "tmpl": COMPUTED_RESULT,
    "ember": COMPUTED_RESULT,
    "jsrender": COMPUTED_RESULT,
    "dot": COMPUTED_RESULT,
    "art-template": COMPUTED_RESULT,
    "tempo": OBJECT_MARKER_PATTERN,
    "transparency": COMPUTED_RESULT,
    "svelte": COMPUTED_RESULT,
    "underscore": COMPUTED_RESULT,
    "lit": COMPUTED_RESULT,
    "mustache": OBJECT_MARKER_PATTERN,
    "hogan": COMPUTED_RESULT,
    "twig": COMPUTED_RESULT,
    "markup": OBJECT_MARKER_PATTERN,
    "dust": OBJECT_MARKER_PATTERN,
    "nunjucks": COMPUTED_RESULT,
    "pug": COMPUTED_RESULT,
    "loadTemplate": OBJECT_MARKER_PATTERN,
    "pure": COMPUTED_RESULT,
    "squirrelly": COMPUTED_RESULT,
    "swig": COMPUTED_RESULT,
    "icanhaz": COMPUTED_RESULT,
    "micro-template": COMPUTED_RESULT,
    "juicer": COMPUTED_RESULT,
    "alpine": COMPUTED_RESULT,
}

# Entries kept as-is but known to be questionable. A positive on one of
# these engines deserves manual confirmation.
FLAGGED_ENGINES: Dict[str, str] = {
    "art-template": "reflection pattern was declared twice (same value) in the legacy table",
    "squirrelly": "payload 'Sqrl' is the probe text, not an executable expression",
    "transparency": "payload 'Transparency' is the probe text, not an executable expression",
    "micro-template": (
        "payload and reflection pattern are filled in (computed mode); the legacy tables "
        "only list its probe; shares the 'template' probe with art-template, so it is only reachable as a hint"
    ),
}


@dataclass(frozen=True)
class EngineSignature:
    """Immutable detection/injection/reflection triple for one engine."""
    id: EngineId
    detection_probe: str
    payload: str
    reflection_pattern: str

    @property
    def mode(self) -> ReflectionMode:
        if self.reflection_pattern == OBJECT_MARKER_PATTERN:
            return ReflectionMode.MARKER
        return ReflectionMode.COMPUTED

    @property
    def flagged(self) -> Optional[str]:
        return FLAGGED_ENGINES.get(self.id.value)


def validate_catalog(
    probes: Dict[str, str],
    payloads: Dict[str, str],
    patterns: Dict[str, str],
) -> None:
    """
    Check the three tables are key-consistent with each other and with
    EngineId. Raises CatalogError listing every problem found.
    """
    problems = []
    known = {e.value for e in EngineId}

    for engine in payloads:
        if engine not in probes:
            problems.append(f"{engine}: payload without detection probe")
        if engine not in patterns:
            problems.append(f"{engine}: payload without reflection pattern")
    for name, table in (("probe", probes), ("payload", payloads), ("pattern", patterns)):
        for engine in table:
            if engine not in known:
                problems.append(f"{engine}: {name} for an engine missing from EngineId")
        for engine in known - set(table):
            problems.append(f"{engine}: no {name} entry")

    if problems:
        raise CatalogError(
            "Engine catalog is inconsistent",
            context={"problems": sorted(set(problems))},
        )


def _build_catalog() -> Dict[EngineId, EngineSignature]:
    validate_catalog(DETECTION_PROBES, PAYLOADS, REFLECTION_PATTERNS)
    catalog = {}
    # Detection table order is the probe order
    for engine in DETECTION_PROBES:
        engine_id = EngineId(engine)
        catalog[engine_id] = EngineSignature(
            id=engine_id,
            detection_probe=DETECTION_PROBES[engine],
            payload=PAYLOADS[engine],
            reflection_pattern=REFLECTION_PATTERNS[engine],
        )
    return catalog


CATALOG: Dict[EngineId, EngineSignature] = _build_catalog()


def lookup(engine_id: Union[str, EngineId]) -> Optional[EngineSignature]:
    """Signature for an engine id, or None when the id is not in the catalog."""
    try:
        return CATALOG[EngineId(engine_id)]
    except ValueError:
        return None


def get(engine_id: Union[str, EngineId]) -> EngineSignature:
    """Like lookup() but raises UnknownEngineError on a miss."""
    return CATALOG[EngineId.parse(engine_id)]


def all_ids() -> Iterator[EngineId]:
    """Engine ids in probe order. Each call returns a fresh iterator."""
    return iter(CATALOG.keys())


def payload_for(engine_id: Union[str, EngineId]) -> str:
    return get(engine_id).payload


__all__ = [
    "EngineId",
    "EngineSignature",
    "ReflectionMode",
    "CATALOG",
    "COMPUTED_RESULT",
    "OBJECT_MARKER_PATTERN",
    "FLAGGED_ENGINES",
    "lookup",
    "get",
    "all_ids",
    "payload_for",
    "validate_catalog",
]
