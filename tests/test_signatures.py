import base64

from conftest import API

PNG = base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32).decode()
PDF = base64.b64encode(b"%PDF-1.7\n% signed by certifier\n%%EOF").decode()


def transition(client, auth_headers, document, action, role="admin"):
    response = client.post(
        f"{API}/documents/{document['id']}/transition",
        json={"action": action},
        headers=auth_headers(role),
    )
    assert response.status_code == 201, response.text


def handwritten(client, auth_headers, document, image=PNG, role="client"):
    return client.post(
        f"{API}/signatures/handwritten",
        json={
            "document_id": document["id"],
            "signer_id": "client-user",
            "signature_image_base64": f"data:image/png;base64,{image}",
            "x_coord": 120,
            "y_coord": 640,
            "page_number": 1,
        },
        headers=auth_headers(role),
    )


def test_capture_pins_the_document_hash(client, auth_headers, document):
    response = client.post(
        f"{API}/signatures/capture",
        json={"document_id": document["id"], "method": "video"},
        headers=auth_headers("operator"),
    )

    assert response.status_code == 201
    signature = response.json()["signature"]
    assert signature["kind"] == "capture"
    assert signature["document_hash"] == document["content_hash"]
    assert signature["details"]["method"] == "video"


def test_signature_stops_verifying_when_the_document_changes(client, auth_headers, document):
    signature_id = handwritten(client, auth_headers, document).json()["signature"]["id"]
    verify_url = f"{API}/signatures/{signature_id}/verify"

    before = client.get(verify_url, headers=auth_headers("validator"))
    client.put(
        f"{API}/documents/{document['id']}",
        json={"data": {"agent_name": "Someone Else"}},
        headers=auth_headers("operator"),
    )
    after = client.get(verify_url, headers=auth_headers("validator"))

    assert before.status_code == 200
    assert before.json()["valid"] is True
    assert after.json()["valid"] is False
    assert after.json()["message"] == "Document content changed after signing"


def test_unknown_signature_is_404(client, auth_headers):
    response = client.get(f"{API}/signatures/missing/verify", headers=auth_headers("admin"))

    assert response.status_code == 404
    assert response.json()["message"] == "Signature not found"


def test_handwritten_signature_moves_pending_document_to_client_signed(client, auth_headers, document):
    transition(client, auth_headers, document, "request_signature")

    response = handwritten(client, auth_headers, document)

    assert response.status_code == 201
    assert response.json()["document_status"] == "client_signed"
    assert response.json()["signature"]["details"] == {"x": 120, "y": 640, "page": 1}


def test_handwritten_signature_must_be_a_png(client, auth_headers, document):
    not_png = base64.b64encode(b"GIF89a" + b"\x00" * 32).decode()

    response = handwritten(client, auth_headers, document, image=not_png)

    assert response.status_code == 400
    assert "PNG" in response.json()["message"]


def test_final_documents_cannot_be_signed(client, auth_headers, document):
    transition(client, auth_headers, document, "cancel")

    response = handwritten(client, auth_headers, document)

    assert response.status_code == 400


def test_request_signing_returns_a_one_time_link(client, auth_headers, document):
    response = client.post(
        f"{API}/signatures/request-signing",
        json={"document_id": document["id"], "signer_email": "signer@example.com"},
        headers=auth_headers("operator"),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["signing_url"].startswith(f"https://sign.signflow.local/sign-document/{document['id']}/")
    assert body["request_id"]


def test_certifier_upload_certifies_an_approved_document(client, auth_headers, document):
    transition(client, auth_headers, document, "certifier_approve", role="certifier")

    response = client.post(
        f"{API}/signatures/certifier-upload",
        json={"document_id": document["id"], "certifier_id": "certifier-user", "signed_pdf_base64": PDF},
        headers=auth_headers("certifier"),
    )
    current = client.get(f"{API}/documents/{document['id']}", headers=auth_headers("admin")).json()

    assert response.status_code == 201
    assert response.json()["previous_status"] == "certifier_approved"
    assert current["status"] == "certified"


def test_certifier_upload_requires_an_approved_document(client, auth_headers, document):
    response = client.post(
        f"{API}/signatures/certifier-upload",
        json={"document_id": document["id"], "certifier_id": "certifier-user", "signed_pdf_base64": PDF},
        headers=auth_headers("certifier"),
    )

    assert response.status_code == 400
    assert "not ready for certification" in response.json()["message"]


def test_certifiers_cannot_upload_for_someone_else(client, auth_headers, document):
    transition(client, auth_headers, document, "certifier_approve", role="certifier")

    response = client.post(
        f"{API}/signatures/certifier-upload",
        json={"document_id": document["id"], "certifier_id": "another-certifier", "signed_pdf_base64": PDF},
        headers=auth_headers("certifier"),
    )

    assert response.status_code == 403


def test_operators_cannot_upload_certified_pdfs(client, auth_headers, document):
    response = client.post(
        f"{API}/signatures/certifier-upload",
        json={"document_id": document["id"], "certifier_id": "operator-user", "signed_pdf_base64": PDF},
        headers=auth_headers("operator", permissions={"signatures:certifier_upload"}),
    )

    assert response.status_code == 403
