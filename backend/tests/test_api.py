"""Tests for API endpoints."""

import pytest
from fastapi.testclient import TestClient

from labelcheck.main import app
from labelcheck.api.routes import get_ocr_backend, get_verification_service
from labelcheck.services import VerificationService

from conftest import FakeOCRBackend


FRONT = b"\x89PNG front label bytes"
BACK = b"\x89PNG back label bytes"

FRONT_TEXT = "OLD TOM DISTILLERY Kentucky Straight Bourbon Whiskey 45% Alc./Vol. 750 mL"
BACK_TEXT = (
    "GOVERNMENT WARNING: (1) According to the Surgeon General, women should not "
    "drink alcoholic beverages during pregnancy because of the risk of birth defects."
)

FORM = {
    "brand_name": "OLD TOM DISTILLERY",
    "product_type": "Kentucky Straight Bourbon Whiskey",
    "alcohol_content": "45%",
    "net_contents": "750 mL",
}


@pytest.fixture
def backend():
    return FakeOCRBackend(texts={FRONT: FRONT_TEXT, BACK: BACK_TEXT})


@pytest.fixture
def client(backend):
    """Test client wired to the fake OCR backend."""
    app.dependency_overrides[get_ocr_backend] = lambda: backend
    app.dependency_overrides[get_verification_service] = lambda: VerificationService(backend)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Test /health endpoint."""

    def test_health_returns_200(self, client):
        """Test health endpoint returns 200."""
        response = client.get("/api/v1/health")
        assert response.status_code == 200

    def test_health_response_format(self, client):
        """Test health endpoint response format."""
        data = client.get("/api/v1/health").json()

        assert data["status"] == "healthy"
        assert data["ocr_ready"] is True
        assert "version" in data


class TestRootEndpoint:
    """Test root endpoint."""

    def test_root_contains_version(self, client):
        """Test root endpoint contains version info."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert "version" in data
        assert "docs" in data


class TestLifespan:
    """Test application startup."""

    def test_startup_warms_backend(self, backend, monkeypatch):
        """Test startup initializes any OCRBackend, not only EasyOCR."""
        monkeypatch.setattr("labelcheck.main.get_ocr_backend", lambda: backend)

        with TestClient(app) as started:
            assert started.get("/").status_code == 200
        assert backend.initialize() is True


class TestVerifyEndpoint:
    """Test /verify endpoint."""

    def test_missing_front_image(self, client, backend):
        """Test a request without a front image is rejected before OCR."""
        response = client.post("/api/v1/verify", data=FORM)

        assert response.status_code == 400
        assert response.json()["detail"] == "No front image provided"
        assert backend.calls == []

    def test_back_only_is_rejected(self, client):
        """Test a back image alone is not enough."""
        response = client.post(
            "/api/v1/verify",
            files={"back_image": ("back.png", BACK, "image/png")},
            data=FORM,
        )
        assert response.status_code == 400

    def test_missing_form_field(self, client):
        """Test required application fields are validated."""
        response = client.post(
            "/api/v1/verify",
            files={"front_image": ("front.png", FRONT, "image/png")},
            data={"brand_name": "OLD TOM DISTILLERY"},
        )
        assert response.status_code == 422

    def test_rejects_invalid_format(self, client):
        """Test unsupported file extensions are rejected."""
        response = client.post(
            "/api/v1/verify",
            files={"front_image": ("front.gif", FRONT, "image/gif")},
            data=FORM,
        )
        assert response.status_code == 400
        assert "Allowed formats" in response.json()["detail"]

    def test_front_only(self, client):
        """Test a successful front-only verification."""
        response = client.post(
            "/api/v1/verify",
            files={"front_image": ("front.png", FRONT, "image/png")},
            data=FORM,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["brand_name"]["matched"] is True
        assert data["brand_name"]["confidence"] == 95
        assert data["alcohol_content"]["matched"] is True
        assert data["net_contents"]["matched"] is True
        assert data["government_warning"] is None
        assert data["category_check"] is None
        assert data["processing_note"] == "Processed front label only"
        assert data["extracted_text"] == FRONT_TEXT
        assert data["back_text"] == ""
        assert data["processing_time_ms"] >= 0

    def test_front_and_back(self, client):
        """Test back label text joins the front for matching."""
        response = client.post(
            "/api/v1/verify",
            files={
                "front_image": ("front.png", FRONT, "image/png"),
                "back_image": ("back.jpg", BACK, "image/jpeg"),
            },
            data={**FORM, "product_category": "spirits"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["processing_note"] == "Processed both front and back labels"
        assert data["government_warning"]["matched"] is True
        assert data["front_text"] == FRONT_TEXT
        assert data["back_text"] == BACK_TEXT

    def test_wine_category_check(self, client):
        """Test the sulfite rule is reported for wine."""
        response = client.post(
            "/api/v1/verify",
            files={"front_image": ("front.png", FRONT, "image/png")},
            data={**FORM, "product_category": "Wine"},
        )

        data = response.json()
        assert data["category_check"]["rule"] == "sulfite_declaration"
        assert data["category_check"]["matched"] is False

    def test_mismatch_is_not_an_error(self, client):
        """Test failed fields still return 200."""
        response = client.post(
            "/api/v1/verify",
            files={"front_image": ("front.png", FRONT, "image/png")},
            data={**FORM, "brand_name": "Blue Ridge Spirits"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert "not found" in data["brand_name"]["detail"]

    def test_excerpts_are_truncated(self, backend, client):
        """Test transcripts are cut to 1500 combined and 750 per side."""
        backend.texts[FRONT] = "A" * 2000
        backend.texts[BACK] = "B" * 2000

        response = client.post(
            "/api/v1/verify",
            files={
                "front_image": ("front.png", FRONT, "image/png"),
                "back_image": ("back.png", BACK, "image/png"),
            },
            data=FORM,
        )

        data = response.json()
        assert len(data["extracted_text"]) == 1500
        assert len(data["front_text"]) == 750
        assert len(data["back_text"]) == 750

    def test_unexpected_error_returns_500(self, client):
        """Test internal failures map to a generic error."""
        class ExplodingService:
            async def verify(self, front, back, expected):
                raise RuntimeError("boom")

        app.dependency_overrides[get_verification_service] = lambda: ExplodingService()
        response = client.post(
            "/api/v1/verify",
            files={"front_image": ("front.png", FRONT, "image/png")},
            data=FORM,
        )

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to process request"


class TestVerifyTextEndpoint:
    """Test /verify/text endpoint."""

    def test_corrected_text(self, client, backend):
        """Test corrected text is verified without OCR."""
        response = client.post(
            "/api/v1/verify/text",
            json={"text": f"{FRONT_TEXT}\n{BACK_TEXT}", "fields": FORM},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["government_warning"]["matched"] is True
        assert backend.calls == []

    def test_beer_category(self, client):
        """Test category is honored on re-verification."""
        response = client.post(
            "/api/v1/verify/text",
            json={
                "text": "HOPWORKS IPA 6.5% ABV brewed with water and hops",
                "fields": {
                    "brand_name": "Hopworks",
                    "product_type": "IPA",
                    "alcohol_content": "6.5%",
                    "product_category": "beer",
                },
            },
        )

        data = response.json()
        assert data["success"] is True
        assert data["category_check"]["rule"] == "ingredients"
        assert data["category_check"]["matched"] is True
        assert data["net_contents"]["detail"] == "Net contents not specified"

    def test_blank_brand_rejected(self, client):
        """Test required fields cannot be blank."""
        response = client.post(
            "/api/v1/verify/text",
            json={"text": FRONT_TEXT, "fields": {**FORM, "brand_name": ""}},
        )
        assert response.status_code == 422
