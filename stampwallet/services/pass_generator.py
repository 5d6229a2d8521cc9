import hashlib
import io
import json
import logging
import os
import subprocess
import tempfile
import zipfile
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from PIL import Image

from stampwallet.core.timestamps import parse_datetime
from stampwallet.services.layout import STRIP, THUMBNAIL
from stampwallet.services.render_cache import render_all_resolutions
from stampwallet.services.strip_generator import (
    DEFAULT_BACKGROUND,
    DEFAULT_FOREGROUND,
    StampImageGenerator,
    StampVisual,
    parse_color,
)

logger = logging.getLogger(__name__)

PASS_ICON_SIZES = {"icon.png": 29, "icon@2x.png": 58}
ETAG_LENGTH = 32


def compute_manifest_etag(manifest: dict[str, str]) -> str:
    """
    Content tag of a pass package.

    SHA-256 over the sorted "name:sha1" manifest lines, truncated and quoted
    for use as an HTTP ETag. The signature is excluded, so re-signing the
    same content yields the same tag.
    """
    lines = "\n".join(f"{name}:{digest}" for name, digest in sorted(manifest.items()))
    return f'"{hashlib.sha256(lines.encode()).hexdigest()[:ETAG_LENGTH]}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """Whether an If-None-Match header value covers `etag`."""
    if not if_none_match:
        return False
    candidates = [value.strip() for value in if_none_match.split(",")]
    bare = etag.strip('"')
    for candidate in candidates:
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate.strip('"') == bare:
            return True
    return False


def build_stamp_visual(wallet_pass: dict, design: dict | None, profile: str) -> StampVisual:
    """Stamp visual for a pass, using the offer's card design or settings defaults."""
    from stampwallet.core.config import settings

    design = design or {}
    return StampVisual(
        icon_id=design.get("stamp_icon") or settings.default_icon_id,
        earned_count=wallet_pass.get("earned_count", 0),
        required_count=wallet_pass.get("required_count", 1),
        background_color=design.get("background_color") or settings.default_background_color,
        foreground_color=design.get("foreground_color") or settings.default_foreground_color,
        profile=profile,
        display_mode=design.get("stamp_display_type") or "svg",
        logo_url=design.get("logo_url"),
        background_url=design.get("strip_background_url"),
    )


class OpenSSLSigner:
    """PKCS#7 detached signature of the manifest via the openssl CLI."""

    def __init__(self, cert_path: str, key_path: str, wwdr_path: str, cert_password: str | None = None):
        self.cert_path = cert_path
        self.key_path = key_path
        self.wwdr_path = wwdr_path
        self.cert_password = cert_password

    def __call__(self, manifest_data: bytes) -> bytes:
        with tempfile.TemporaryDirectory() as tmpdir:
            manifest_path = os.path.join(tmpdir, "manifest.json")
            signature_path = os.path.join(tmpdir, "signature")

            with open(manifest_path, "wb") as f:
                f.write(manifest_data)

            cmd = [
                "openssl", "smime", "-sign",
                "-signer", self.cert_path,
                "-inkey", self.key_path,
                "-certfile", self.wwdr_path,
                "-in", manifest_path,
                "-out", signature_path,
                "-outform", "DER",
                "-binary",
            ]

            if self.cert_password:
                cmd.extend(["-passin", f"pass:{self.cert_password}"])

            result = subprocess.run(cmd, capture_output=True, text=True)
            if result.returncode != 0:
                raise RuntimeError(f"OpenSSL signing failed: {result.stderr}")

            with open(signature_path, "rb") as f:
                return f.read()


@dataclass(frozen=True)
class PassPackage:
    data: bytes
    etag: str
    last_modified: datetime | None


class PassGenerator:
    def __init__(
        self,
        team_id: str,
        pass_type_id: str,
        base_url: str,
        stamp_generator: StampImageGenerator,
        signer: Callable[[bytes], bytes],
        organization_name: str = "Coffee Shop",
    ):
        self.team_id = team_id
        self.pass_type_id = pass_type_id
        self.base_url = base_url.rstrip("/")
        self.stamp_generator = stamp_generator
        self.signer = signer
        self.organization_name = organization_name

    def create_pass_json(self, wallet_pass: dict, design: dict | None = None) -> dict:
        """Create the pass.json content.

        Only pass state feeds into the document (no generation timestamps), so
        unchanged passes produce byte-identical JSON.
        """
        from stampwallet.core.config import settings

        design = design or {}
        org_name = design.get("organization_name") or self.organization_name
        pass_style = "generic" if design.get("pass_style") == "generic" else "storeCard"

        earned = wallet_pass.get("earned_count") or 0
        required = wallet_pass.get("required_count") or 1
        fields = {
            "headerFields": [
                {"key": "stamps", "label": "STAMPS", "value": f"{earned} / {required}"}
            ],
        }
        if design.get("reward_description"):
            fields["secondaryFields"] = [
                {"key": "reward", "label": "REWARD", "value": design["reward_description"]}
            ]

        pass_json = {
            "formatVersion": 1,
            "passTypeIdentifier": self.pass_type_id,
            "teamIdentifier": self.team_id,
            "serialNumber": wallet_pass["id"],
            "authenticationToken": wallet_pass["authentication_token"],
            "webServiceURL": f"{self.base_url}/wallet",
            "organizationName": org_name,
            "description": design.get("description") or f"{org_name} Loyalty Card",
            "logoText": design.get("logo_text") or org_name,
            "foregroundColor": design.get("foreground_color") or settings.default_foreground_color,
            "backgroundColor": design.get("background_color") or settings.default_background_color,
            "labelColor": design.get("label_color") or settings.default_label_color,
            pass_style: fields,
            "barcodes": [
                {
                    "message": wallet_pass["id"],
                    "format": "PKBarcodeFormatQR",
                    "messageEncoding": "iso-8859-1",
                }
            ],
        }

        expiration = parse_datetime(wallet_pass.get("scheduled_expiration_at"))
        if expiration:
            pass_json["expirationDate"] = expiration.isoformat(timespec="seconds")

        if wallet_pass.get("status") in ("expired", "deleted"):
            pass_json["voided"] = True

        return pass_json

    def _render_pass_icon(self, design: dict, size: int) -> bytes:
        """Small square app icon: the stamp glyph on the card background."""
        background = parse_color(design.get("background_color"), DEFAULT_BACKGROUND)
        img = Image.new("RGBA", (size, size), background + (255,))
        try:
            from stampwallet.core.config import settings

            library = self.stamp_generator.icon_library
            artwork = library.get(design.get("stamp_icon") or settings.default_icon_id)
            glyph_size = max(1, int(size * 0.8))
            color = parse_color(design.get("foreground_color"), DEFAULT_FOREGROUND)
            glyph = library.rasterize(artwork, color, glyph_size)
            offset = (size - glyph_size) // 2
            img.alpha_composite(glyph, (offset, offset))
        except Exception as e:
            logger.warning(f"Pass icon glyph unavailable, using plain icon: {e}")

        buffer = io.BytesIO()
        img.convert("RGB").save(buffer, format="PNG")
        return buffer.getvalue()

    def create_files(self, wallet_pass: dict, design: dict | None = None) -> dict[str, bytes]:
        """All package files except manifest and signature."""
        design = design or {}
        pass_json = self.create_pass_json(wallet_pass, design)
        files = {
            "pass.json": json.dumps(pass_json, sort_keys=True, separators=(",", ":")).encode(),
        }

        for filename, size in PASS_ICON_SIZES.items():
            files[filename] = self._render_pass_icon(design, size)

        profile = THUMBNAIL if "generic" in pass_json else STRIP
        visual = build_stamp_visual(wallet_pass, design, profile.name)
        files.update(render_all_resolutions(self.stamp_generator, visual))
        return files

    def create_manifest(self, files: dict[str, bytes]) -> dict[str, str]:
        """SHA-1 of every package file."""
        return {filename: hashlib.sha1(content).hexdigest() for filename, content in sorted(files.items())}

    def generate_pass(self, wallet_pass: dict, design: dict | None = None) -> PassPackage:
        """Build the signed .pkpass archive for a pass."""
        files = self.create_files(wallet_pass, design)
        manifest = self.create_manifest(files)
        manifest_data = json.dumps(manifest, sort_keys=True, indent=2).encode()

        files["manifest.json"] = manifest_data
        files["signature"] = self.signer(manifest_data)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for filename in sorted(files):
                zf.writestr(filename, files[filename])

        return PassPackage(
            data=buffer.getvalue(),
            etag=compute_manifest_etag(manifest),
            last_modified=parse_datetime(wallet_pass.get("last_updated_at")),
        )


def create_pass_generator() -> PassGenerator:
    """Factory function to create PassGenerator from settings."""
    from stampwallet.core.config import settings
    from stampwallet.services.strip_generator import create_stamp_image_generator

    return PassGenerator(
        team_id=settings.apple_team_id,
        pass_type_id=settings.apple_pass_type_id,
        base_url=settings.base_url,
        stamp_generator=create_stamp_image_generator(),
        signer=OpenSSLSigner(
            cert_path=settings.cert_path,
            key_path=settings.key_path,
            wwdr_path=settings.wwdr_path,
            cert_password=settings.cert_password,
        ),
        organization_name=settings.organization_name,
    )
