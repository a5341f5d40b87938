"""
iOS over-the-air install manifest.

Builds the property list that iOS reads from an ``itms-services://`` link to
find and install an IPA.
"""

import plistlib
from dataclasses import dataclass
from urllib.parse import quote

DEFAULT_APP_NAME = "My App"
DEFAULT_BUNDLE_ID = "com.example.app"
DEFAULT_VERSION = "1.0.0"


def _first(value, default):
    # Repeated form fields arrive as lists, the first one wins
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return default
    value = str(value).strip()
    return value or default


@dataclass
class ManifestFields:
    app_name: str = DEFAULT_APP_NAME
    bundle_id: str = DEFAULT_BUNDLE_ID
    version: str = DEFAULT_VERSION

    @classmethod
    def from_form(cls, app_name=None, bundle_id=None, version=None):
        return cls(
            app_name=_first(app_name, DEFAULT_APP_NAME),
            bundle_id=_first(bundle_id, DEFAULT_BUNDLE_ID),
            version=_first(version, DEFAULT_VERSION),
        )


def generate_plist(app_name, bundle_id, version, ipa_url):
    """Return the XML manifest pointing at ``ipa_url`` as bytes."""
    manifest = {
        "items": [{
            "assets": [{"kind": "software-package", "url": ipa_url}],
            "metadata": {
                "bundle-identifier": bundle_id,
                "bundle-version": version,
                "kind": "software",
                "title": app_name,
            },
        }]
    }
    return plistlib.dumps(manifest, fmt=plistlib.FMT_XML, sort_keys=True)


def install_link(manifest_url):
    return f"itms-services://?action=download-manifest&url={quote(manifest_url, safe=':/')}"
