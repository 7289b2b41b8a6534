import base64
import json
import uuid

import pytest

from app.utils import auth

PUSH_BODY = {
    "message": {
        "data": base64.b64encode(
            json.dumps({"lecture_id": str(uuid.uuid4()), "slide_numbers": [2]}).encode()
        ).decode()
    },
    "subscription": "slide-summary",
}


@pytest.fixture
def prod_auth(mocker):
    mocker.patch.object(auth.settings, "app_env", "prod")
    mocker.patch.object(auth.settings, "pubsub_base_url", "https://ai.example.com")
    mocker.patch.object(
        auth.settings, "pubsub_service_account_email", "push@example.iam.gserviceaccount.com"
    )
    return mocker.patch.object(auth.id_token, "verify_oauth2_token")


def test_missing_header_is_rejected(client, prod_auth, job_recorder):
    response = client.post("/slide-summary", json=PUSH_BODY)

    assert response.status_code == 401
    prod_auth.assert_not_called()


def test_malformed_header_is_rejected(client, prod_auth, job_recorder):
    response = client.post(
        "/slide-summary", json=PUSH_BODY, headers={"Authorization": "Token abc"}
    )

    assert response.status_code == 401


def test_invalid_token_is_rejected(client, prod_auth, job_recorder):
    prod_auth.side_effect = ValueError("Token expired")

    response = client.post(
        "/slide-summary", json=PUSH_BODY, headers={"Authorization": "Bearer abc"}
    )

    assert response.status_code == 401


def test_wrong_service_account_is_forbidden(client, prod_auth, job_recorder):
    prod_auth.return_value = {"email": "someone@example.com", "email_verified": True}

    response = client.post(
        "/slide-summary", json=PUSH_BODY, headers={"Authorization": "Bearer abc"}
    )

    assert response.status_code == 403


def test_valid_token_is_accepted(client, settle, prod_auth, job_recorder):
    prod_auth.return_value = {
        "email": "push@example.iam.gserviceaccount.com",
        "email_verified": True,
    }

    response = client.post(
        "/slide-summary", json=PUSH_BODY, headers={"Authorization": "Bearer abc"}
    )
    settle()

    assert response.status_code == 204
    assert prod_auth.call_args.kwargs["audience"] == "https://ai.example.com/slide-summary"
