"""Встроенные пресеты assertions."""

from types import MappingProxyType
from typing import Any, Mapping

PERFORMANCE_METRICS = {
    "first-contentful-paint": ["warn", {"maxNumericValue": 2000}],
    "largest-contentful-paint": ["warn", {"maxNumericValue": 2500}],
    "speed-index": ["warn", {"maxNumericValue": 3400}],
    "interactive": ["warn", {"maxNumericValue": 3800}],
    "total-blocking-time": ["warn", {"maxNumericValue": 300}],
    "cumulative-layout-shift": ["warn", {"maxNumericValue": 0.1}],
}

BEST_PRACTICE_AUDITS = (
    "uses-http2",
    "uses-long-cache-ttl",
    "uses-text-compression",
    "uses-responsive-images",
    "offscreen-images",
    "render-blocking-resources",
    "unminified-css",
    "unminified-javascript",
    "unused-css-rules",
    "errors-in-console",
    "is-on-https",
    "doctype",
    "no-vulnerable-libraries",
)

ACCESSIBILITY_AUDITS = (
    "color-contrast",
    "document-title",
    "html-has-lang",
    "image-alt",
    "label",
    "link-name",
    "meta-viewport",
)

PWA_AUDITS = (
    "works-offline",
    "installable-manifest",
    "service-worker",
    "splash-screen",
    "themed-omnibox",
    "redirects-http",
)


def _freeze(assertions: dict) -> Mapping[str, Any]:
    return MappingProxyType(dict(assertions))


def _build_no_pwa() -> dict:
    assertions = dict(PERFORMANCE_METRICS)
    assertions.update({audit_id: "warn" for audit_id in BEST_PRACTICE_AUDITS})
    assertions.update({audit_id: "error" for audit_id in ACCESSIBILITY_AUDITS})
    return assertions


def _build_recommended() -> dict:
    assertions = _build_no_pwa()
    assertions.update({audit_id: "error" for audit_id in PWA_AUDITS})
    return assertions


def _build_all() -> dict:
    audit_ids = (
        tuple(PERFORMANCE_METRICS) + BEST_PRACTICE_AUDITS + ACCESSIBILITY_AUDITS + PWA_AUDITS
    )
    return {audit_id: "error" for audit_id in audit_ids}


PRESETS: Mapping[str, Mapping[str, Any]] = MappingProxyType({
    "recommended": _freeze(_build_recommended()),
    "no-pwa": _freeze(_build_no_pwa()),
    "all": _freeze(_build_all()),
})
