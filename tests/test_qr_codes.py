import pytest

from patrolhub.services.errors import BlobUploadError, SiteNotFoundError
from patrolhub.services.qr_codes import checkpoint_payload, generate_checkpoint_qr, render_png
from patrolhub.services.qr_payload import parse_qr_payload
from patrolhub.services.site_config import SiteDirectory

from conftest import FakeBlobStore


def test_checkpoint_payload_format():
    payload = checkpoint_payload("CP-1", "Main Gate", "VKS-A-001", "A", base_url="https://guard.test/app/")
    assert payload == "https://guard.test/app?type=info&locId=CP-1&cpName=Main%20Gate&siteId=VKS-A-001&route=A"


def test_render_png():
    assert render_png("VKS|VKS-A-001|1").startswith(b"\x89PNG")


def test_generated_code_scans_back_to_the_checkpoint(store, blob):
    result = generate_checkpoint_qr(SiteDirectory(store), blob, "SITE-001", "CP-4", "Fire Exit")
    assert result.url.startswith("https://blob.test/uploads/")
    assert result.file_name == "QR_VKS-A-001_CP-4.png"
    assert blob.uploads[0]["content_type"] == "image/png"

    ref = parse_qr_payload(result.payload)
    assert ref.site_token == "VKS-A-001"
    assert ref.location_id == "CP-4"
    assert ref.checkpoint_name == "Fire Exit"
    assert ref.route == "A"


def test_unknown_site(store, blob):
    with pytest.raises(SiteNotFoundError):
        generate_checkpoint_qr(SiteDirectory(store), blob, "Nowhere", "CP-1", "Gate")


def test_upload_failure(store):
    with pytest.raises(BlobUploadError):
        generate_checkpoint_qr(SiteDirectory(store), FakeBlobStore(fail=True), "VKS-A-001", "CP-1", "Gate")
