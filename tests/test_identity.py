import pytest

from signflow.features.identity.module import is_valid_rut, rut_check_digit

from conftest import API, OTP_CODE


@pytest.mark.parametrize("body, digit", [("12345678", "5"), ("11111111", "1"), ("7654321", "6")])
def test_rut_check_digit(body, digit):
    assert rut_check_digit(body) == digit


def test_rut_validation_accepts_k_check_digit():
    assert is_valid_rut("10000013-K")
    assert not is_valid_rut("12345678-9")


def test_validate_rut_endpoint(client, auth_headers):
    headers = auth_headers("client")

    valid = client.post(f"{API}/identity/validate-rut", json={"rut": "12.345.678-5"}, headers=headers)
    wrong_digit = client.post(f"{API}/identity/validate-rut", json={"rut": "12345678-4"}, headers=headers)
    bad_format = client.post(f"{API}/identity/validate-rut", json={"rut": "abc"}, headers=headers)

    assert valid.status_code == 201
    assert valid.json()["rut"] == "12345678-5"
    assert wrong_digit.status_code == 400
    assert bad_format.status_code == 400
    assert bad_format.json()["details"][0]["field"] == "rut"


def test_one_time_code_is_single_use(client, auth_headers):
    headers = auth_headers("client")
    phone = "+56912345678"

    sent = client.post(f"{API}/identity/send-otp", json={"phone": phone}, headers=headers)
    assert sent.status_code == 201
    assert OTP_CODE not in sent.text

    wrong = client.post(f"{API}/identity/verify-otp", json={"phone": phone, "code": "000000"}, headers=headers)
    first = client.post(f"{API}/identity/verify-otp", json={"phone": phone, "code": OTP_CODE}, headers=headers)
    replay = client.post(f"{API}/identity/verify-otp", json={"phone": phone, "code": OTP_CODE}, headers=headers)

    assert wrong.status_code == 400
    assert first.status_code == 201
    assert replay.status_code == 400


@pytest.mark.parametrize("data, status_code", [
    ({"faceMatchScore": 0.93, "livenessDetected": True}, 201),
    ({"faceMatchScore": 0.8, "livenessDetected": True}, 400),
    ({"faceMatchScore": 0.99, "livenessDetected": False}, 400),
    ({"livenessDetected": True}, 400),
])
def test_biometric_threshold(client, auth_headers, data, status_code):
    response = client.post(
        f"{API}/identity/verify-biometric",
        json={"biometricData": data},
        headers=auth_headers("client"),
    )

    assert response.status_code == status_code
