"""
End-to-end tests for the REST API through FastAPI's TestClient.

Every test seeds its data through the API itself so the request sessions
are the only users of the in-memory store.
"""

import inspect

import pytest
from httpx import AsyncClient, ASGITransport

from backoffice_api import server
from backoffice_api.routes import documents
from backoffice_db.connection import DatabaseSessionProvider, DatabaseSettings, set_db_provider
from backoffice_db.repositories import ClientRepository


ASHA = {
    "firstName": "Asha",
    "lastName": "Verma",
    "panNumber": "abcde1234f",
    "address": {"addressLine1": "12 Park Street", "city": "Kolkata", "pincode": "700016"},
    "contacts": [
        {"type": "email", "contactPriority": "primary", "contactDetails": "asha@example.com"},
        {"type": "phone", "contactPriority": "primary", "contactDetails": "+91 98765 43210"},
    ],
}


def create_client(client, **fields):
    payload = {"firstName": "Asha", "lastName": "Verma", **fields}
    response = client.post("/api/clients", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


def create_institution(client, name="State Bank of India", institution_type="bank"):
    response = client.post("/api/institutions", json={
        "institutionType": institution_type,
        "institutionName": name,
        "ifscCode": "SBIN0000123",
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


def create_account(client, institution_id, number="SB-1001", **fields):
    response = client.post("/api/accounts", json={
        "accountNumber": number,
        "accountType": "savings",
        "institutionId": institution_id,
        **fields,
    })
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


def audit_operations(client, table_name, record_id):
    response = client.get("/api/audit-log", params={"tableName": table_name, "recordId": record_id})
    return [entry["operation"] for entry in response.json()["data"]]


class TestClientEndpoints:
    """Tests for /api/clients"""

    def test_create_with_address_and_contacts(self, client):
        response = client.post("/api/clients", json=ASHA)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Client created successfully"
        data = body["data"]
        assert data["email"] == "asha@example.com"
        assert data["phone"] == "9876543210"
        assert len(data["contacts"]) == 2
        assert data["panNumber"] == "ABCDE1234F"
        assert data["city"] == "Kolkata"
        assert data["country"] == "India"
        assert data["deletionStatus"] == "active"

        fetched = client.get(f"/api/clients/{data['id']}").json()["data"]
        assert fetched["email"] == "asha@example.com"
        assert len(fetched["contacts"]) == 2

    def test_invalid_contact_is_skipped(self, client):
        response = client.post("/api/clients", json={
            "firstName": "Ravi",
            "lastName": "Kumar",
            "contacts": [
                {"type": "email", "contactPriority": "primary", "contactDetails": "not-an-email"},
                {"type": "phone", "contactPriority": "primary", "contactDetails": "9123456780"},
            ],
        })
        assert response.status_code == 201
        data = response.json()["data"]
        assert [c["contactDetails"] for c in data["contacts"]] == ["9123456780"]
        assert data["email"] is None

    def test_names_required(self, client):
        response = client.post("/api/clients", json={"firstName": "Ravi"})
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "First name and last name are required",
        }
        assert client.get("/api/clients/stats/count").json()["data"]["count"] == 0

    def test_invalid_pan_rejected(self, client):
        response = client.post("/api/clients", json={**ASHA, "panNumber": "12345"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["errors"][0]["field"] == "panNumber"

    def test_invalid_id(self, client):
        response = client.get("/api/clients/abc")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid client ID"

    def test_not_found(self, client):
        response = client.get("/api/clients/999")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Client not found"}

    def test_update(self, client):
        client_id = create_client(client)

        response = client.put(f"/api/clients/{client_id}", json={
            "occupation": "Engineer",
            "address": {"addressLine1": "4 Lake Road", "pincode": "560001", "city": "Bengaluru"},
        })

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["occupation"] == "Engineer"
        assert data["city"] == "Bengaluru"
        assert data["firstName"] == "Asha"

    def test_update_without_changes(self, client):
        client_id = create_client(client)
        response = client.put(f"/api/clients/{client_id}", json={})
        assert response.status_code == 404
        assert response.json()["error"] == "Client not found or no changes made"
        assert client.put("/api/clients/999", json={"occupation": "x"}).status_code == 404

    def test_soft_delete_and_restore(self, client):
        client_id = create_client(client)

        assert client.delete(f"/api/clients/{client_id}").status_code == 200
        assert client.get(f"/api/clients/{client_id}").status_code == 404
        hidden = client.get(f"/api/clients/{client_id}", params={"includeDeleted": "true"})
        assert hidden.json()["data"]["deletionStatus"] == "soft_deleted"
        assert client.get("/api/clients").json()["count"] == 0
        assert client.get("/api/clients/deleted").json()["count"] == 1
        assert client.get("/api/clients/stats/count").json()["data"]["count"] == 0

        restored = client.post(f"/api/clients/{client_id}/restore")
        assert restored.status_code == 200
        assert restored.json()["data"]["deletionStatus"] == "active"
        assert client.get("/api/clients").json()["count"] == 1

    def test_hard_delete(self, client):
        client_id = create_client(client)
        assert client.delete(f"/api/clients/{client_id}/hard").status_code == 200
        missing = client.get(f"/api/clients/{client_id}", params={"includeDeleted": "true"})
        assert missing.status_code == 404
        assert client.delete(f"/api/clients/{client_id}/hard").status_code == 404

    def test_audit_trail_for_lifecycle(self, client):
        client_id = create_client(client)
        client.put(f"/api/clients/{client_id}", json={"occupation": "Doctor"})
        client.delete(f"/api/clients/{client_id}", headers={"X-User-ID": "ops-admin"})
        client.post(f"/api/clients/{client_id}/restore")

        assert audit_operations(client, "clients", client_id) == ["RESTORE", "DELETE", "UPDATE", "INSERT"]

        deletes = client.get("/api/audit-log", params={"operation": "DELETE"}).json()["data"]
        assert deletes[0]["userId"] == "ops-admin"
        assert deletes[0]["recordId"] == client_id
        assert '"soft_deleted"' in deletes[0]["newValues"]

    def test_linked_clients(self, client):
        husband = create_client(client, firstName="Vikram", lastName="Rao")
        wife = create_client(client, firstName="Lakshmi", lastName="Rao",
                             linkedClientId=husband, linkedClientRelationship="spouse")

        links = client.get(f"/api/clients/{husband}").json()["data"]["allLinkedClients"]
        assert links == [{"id": wife, "name": "Lakshmi Rao", "relationshipType": "spouse", "direction": "reverse"}]
        assert client.get(f"/api/clients/{wife}").json()["data"]["linkedClientName"] == "Vikram Rao"
        assert client.get(f"/api/clients/linked/{husband}").json()["count"] == 1

    def test_new_primary_contact_replaces_old(self, client):
        client_id = client.post("/api/clients", json=ASHA).json()["data"]["id"]

        response = client.post(f"/api/clients/{client_id}/contacts", json={
            "type": "email", "contactPriority": "primary", "contactDetails": "asha@work.in",
        })
        assert response.status_code == 201

        contacts = client.get(f"/api/clients/{client_id}/contacts").json()["data"]
        primary_emails = [c for c in contacts if c["type"] == "email" and c["contactPriority"] == "primary"]
        assert [c["contactDetails"] for c in primary_emails] == ["asha@work.in"]
        assert client.get(f"/api/clients/{client_id}").json()["data"]["email"] == "asha@work.in"

        old = [c for c in contacts if c["contactDetails"] == "asha@example.com"][0]
        promoted = client.put(f"/api/clients/contacts/{old['id']}/primary")
        assert promoted.status_code == 200
        assert client.get(f"/api/clients/{client_id}").json()["data"]["email"] == "asha@example.com"

    def test_set_primary_missing_contact(self, client):
        response = client.put("/api/clients/contacts/999/primary")
        assert response.status_code == 404

    def test_filters(self, client):
        create_client(client, firstName="Priya", lastName="Shah")
        create_client(client, firstName="Rahul", lastName="Mehta", status="pending")

        assert client.get("/api/clients", params={"status": "pending"}).json()["count"] == 1
        assert client.get("/api/clients", params={"search": "Shah"}).json()["data"][0]["firstName"] == "Priya"
        assert client.get("/api/clients/status/pending").json()["count"] == 1
        assert client.get("/api/clients/status/archived").status_code == 400


class TestAccountEndpoints:
    """Tests for /api/accounts"""

    def test_create_with_holders(self, client):
        institution_id = create_institution(client)
        client_id = create_client(client)

        response = client.post("/api/accounts", json={
            "accountNumber": "SB-1001",
            "accountType": "savings",
            "institutionId": institution_id,
            "holders": [{"clientId": client_id}],
        })

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["institutionName"] == "State Bank of India"
        assert data["accountHolderNames"] == ["Asha Verma"]
        assert data["accountOwnershipType"] == "individual"
        assert audit_operations(client, "accounts", data["id"]) == ["INSERT"]

        held = client.get(f"/api/clients/{client_id}/accounts").json()["data"]
        assert held[0]["accountNumber"] == "SB-1001"

    def test_duplicate_account_number(self, client):
        institution_id = create_institution(client)
        create_account(client, institution_id, "SB-1001")

        response = client.post("/api/accounts", json={
            "accountNumber": "SB-1001", "accountType": "current", "institutionId": institution_id,
        })

        assert response.status_code == 400
        assert response.json()["error"] == "Account number already exists"
        assert client.get("/api/accounts/stats/count").json()["data"]["count"] == 1

    def test_number_of_deleted_account_stays_taken(self, client):
        institution_id = create_institution(client)
        account_id = create_account(client, institution_id, "SB-1001")
        client.delete(f"/api/accounts/{account_id}")

        response = client.post("/api/accounts", json={
            "accountNumber": "SB-1001", "accountType": "savings", "institutionId": institution_id,
        })
        assert response.status_code == 400

    def test_required_fields(self, client):
        response = client.post("/api/accounts", json={"accountNumber": "SB-1"})
        assert response.status_code == 400
        assert response.json()["error"] == "Account number, institution ID and account type are required"

    def test_unknown_institution(self, client):
        response = client.post("/api/accounts", json={
            "accountNumber": "SB-1", "accountType": "savings", "institutionId": 77,
        })
        assert response.status_code == 400
        assert response.json()["error"] == "Institution not found"

    def test_transactions_balance_and_summary(self, client):
        account_id = create_account(client, create_institution(client))
        for payload in (
            {"transactionType": "deposit", "amount": 1000},
            {"transactionType": "withdrawal", "amount": 200},
            {"transactionType": "deposit", "amount": 50, "status": "pending"},
        ):
            response = client.post(f"/api/accounts/{account_id}/transactions", json=payload)
            assert response.status_code == 201

        balance = client.get(f"/api/accounts/{account_id}/balance").json()["data"]
        assert balance == {"accountId": account_id, "balance": 800.0}

        summary = client.get(f"/api/accounts/{account_id}/summary").json()["data"]
        assert [(s["transactionType"], s["count"]) for s in summary] == [("deposit", 1), ("withdrawal", 1)]

        listed = client.get(f"/api/accounts/{account_id}/transactions", params={"limit": 2}).json()
        assert listed["count"] == 2

    def test_transaction_amount_must_be_positive(self, client):
        account_id = create_account(client, create_institution(client))
        response = client.post(f"/api/accounts/{account_id}/transactions", json={
            "transactionType": "deposit", "amount": 0,
        })
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "amount"

    def test_holder_management(self, client):
        account_id = create_account(client, create_institution(client))
        client_id = create_client(client)

        added = client.post(f"/api/accounts/{account_id}/holders", json={"clientId": client_id})
        assert added.status_code == 201
        duplicate = client.post(f"/api/accounts/{account_id}/holders", json={"clientId": client_id})
        assert duplicate.status_code == 400
        assert duplicate.json()["error"] == "Client is already a holder of this account"
        assert client.get(f"/api/accounts/{account_id}/holders").json()["count"] == 1

        assert client.delete(f"/api/accounts/{account_id}/holders/{client_id}").status_code == 200
        assert client.delete(f"/api/accounts/{account_id}/holders/{client_id}").status_code == 404

    def test_list_filters(self, client):
        institution_id = create_institution(client)
        create_account(client, institution_id, "RD-6", tenure=6, accountType="recurring_deposit")
        create_account(client, institution_id, "RD-36", tenure=36, accountType="recurring_deposit")

        assert client.get("/api/accounts", params={"tenureRange": "24+"}).json()["data"][0]["accountNumber"] == "RD-36"
        assert client.get("/api/accounts/type/recurring_deposit").json()["count"] == 2
        assert client.get("/api/accounts/institution/bank").json()["count"] == 2
        assert client.get("/api/accounts/number/RD-6").json()["data"]["tenure"] == 6
        assert client.get("/api/accounts/number/NOPE").status_code == 404

    def test_bad_filters(self, client):
        assert client.get("/api/accounts", params={"tenureRange": "forever"}).status_code == 400
        response = client.get("/api/accounts", params={"clientIds": "1,x"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid client ID"

    def test_update_to_taken_number(self, client):
        institution_id = create_institution(client)
        create_account(client, institution_id, "SB-1")
        second = create_account(client, institution_id, "SB-2")

        response = client.put(f"/api/accounts/{second}", json={"accountNumber": "SB-1"})
        assert response.status_code == 400
        renamed = client.put(f"/api/accounts/{second}", json={"accountNumber": "SB-3"})
        assert renamed.json()["data"]["accountNumber"] == "SB-3"


class TestShopEndpoints:
    """Tests for /api/shops and /api/shop-clients"""

    def test_create_shop(self, client):
        owner = create_client(client, firstName="Kiran", lastName="Patel")
        response = client.post("/api/shops", json={
            "shopName": "Patel Stores",
            "category": "grocery",
            "ownerId": owner,
            "address": {"addressLine1": "Market Road", "pincode": "380001", "city": "Ahmedabad"},
        })
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["ownerName"] == "Kiran Patel"
        assert data["city"] == "Ahmedabad"
        assert client.get("/api/shops/category/grocery").json()["count"] == 1

    def test_shop_validation(self, client):
        missing_name = client.post("/api/shops", json={"ownerId": 1})
        assert missing_name.status_code == 400
        assert missing_name.json()["error"] == "Shop name and owner ID are required"

        missing_owner = client.post("/api/shops", json={"shopName": "Ghost", "ownerId": 42})
        assert missing_owner.status_code == 400
        assert missing_owner.json()["error"] == "Owner client not found"

    def test_shop_lifecycle(self, client):
        owner = create_client(client)
        shop_id = client.post("/api/shops", json={"shopName": "Verma Traders", "ownerId": owner}).json()["data"]["id"]

        assert client.put(f"/api/shops/{shop_id}", json={"status": "suspended"}).json()["data"]["status"] == "suspended"
        client.delete(f"/api/shops/{shop_id}")
        assert client.get(f"/api/shops/{shop_id}").status_code == 404
        client.post(f"/api/shops/{shop_id}/restore")
        assert audit_operations(client, "shops", shop_id) == ["RESTORE", "DELETE", "UPDATE", "INSERT"]

    def test_associations(self, client):
        owner = create_client(client, firstName="Kiran", lastName="Patel")
        customer = create_client(client, firstName="Meera", lastName="Joshi")
        shop_id = client.post("/api/shops", json={"shopName": "Patel Stores", "ownerId": owner}).json()["data"]["id"]

        created = client.post("/api/shop-clients", json={"shopId": shop_id, "clientId": customer})
        assert created.status_code == 201
        assert created.json()["data"]["clientFirstName"] == "Meera"
        assert created.json()["data"]["relationshipType"] == "customer"

        duplicate = client.post("/api/shop-clients", json={"shopId": shop_id, "clientId": customer})
        assert duplicate.status_code == 400
        assert duplicate.json()["error"] == "Client is already associated with this shop"

        assert client.get(f"/api/shop-clients/shop/{shop_id}/count").json()["data"]["count"] == 1
        assert client.get(f"/api/shop-clients/client/{customer}").json()["data"][0]["shopName"] == "Patel Stores"
        assert client.get(f"/api/shops/{shop_id}/clients").json()["count"] == 1

        assert client.delete(f"/api/shop-clients/shop/{shop_id}/client/{customer}").status_code == 200
        assert client.get(f"/api/shop-clients/client/{customer}/count").json()["data"]["count"] == 0

    def test_association_with_missing_shop(self, client):
        customer = create_client(client)
        response = client.post("/api/shop-clients", json={"shopId": 99, "clientId": customer})
        assert response.status_code == 404
        assert response.json()["error"] == "Shop not found"


class TestDocumentEndpoints:
    """Tests for /api/documents and the client KYC download routes"""

    def upload(self, client, entity_id, content=b"%PDF-1.4 test", filename="pan.pdf",
               content_type="application/pdf", document_type="pan_card", entity_type="client"):
        return client.post(
            f"/api/documents/upload/{entity_type}/{entity_id}",
            files={"document": (filename, content, content_type)},
            data={"documentType": document_type, "documentNumber": "ABCDE1234F"},
        )

    def test_upload_and_stream(self, client, upload_dir):
        client_id = create_client(client)

        response = self.upload(client, client_id)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["fileName"] == "pan.pdf"
        assert data["fileSize"] == len(b"%PDF-1.4 test")
        assert data["isVerified"] is False
        assert "filePath" not in data
        assert len(list(upload_dir.iterdir())) == 1

        streamed = client.get(f"/api/documents/file/{data['id']}")
        assert streamed.status_code == 200
        assert streamed.content == b"%PDF-1.4 test"

        assert client.get(f"/api/documents/client/{client_id}").json()["count"] == 1

        download = client.get(f"/api/clients/{client_id}/documents/pan/download")
        assert download.status_code == 200
        assert download.headers["content-disposition"].startswith("attachment")
        view = client.get(f"/api/clients/{client_id}/documents/pan/view")
        assert view.headers["content-disposition"].startswith("inline")

    def test_multi_chunk_upload_is_stored_whole(self, client, upload_dir):
        # the handler is sync so its blocking reads and writes run in the threadpool
        assert not inspect.iscoroutinefunction(documents.upload_document)
        client_id = create_client(client)
        content = bytes(range(256)) * ((documents.CHUNK_SIZE * 3) // 256 + 1)

        response = self.upload(client, client_id, content=content)

        assert response.status_code == 201
        assert response.json()["data"]["fileSize"] == len(content)
        [stored] = upload_dir.iterdir()
        assert stored.read_bytes() == content

    def test_oversized_upload_leaves_nothing(self, client, upload_dir):
        client_id = create_client(client)

        response = self.upload(client, client_id, content=b"x" * (1024 * 1024 + 1))

        assert response.status_code == 413
        assert response.json()["error"] == "File too large. Maximum size is 1MB"
        assert list(upload_dir.iterdir()) == []
        assert client.get(f"/api/documents/client/{client_id}").json()["count"] == 0

    def test_disallowed_type_leaves_nothing(self, client, upload_dir):
        client_id = create_client(client)

        response = self.upload(client, client_id, content=b"hello", filename="notes.txt",
                               content_type="text/plain")

        assert response.status_code == 400
        assert response.json()["error"] == "Only image files (JPEG, PNG, GIF) and PDF files are allowed"
        assert list(upload_dir.iterdir()) == []
        assert client.get(f"/api/documents/client/{client_id}").json()["count"] == 0

    @pytest.mark.parametrize("entity_type,document_type", [
        ("shop", "pan_card"),
        ("client", "library_card"),
    ])
    def test_rejected_upload_parameters(self, client, entity_type, document_type):
        client_id = create_client(client)
        response = self.upload(client, client_id, entity_type=entity_type, document_type=document_type)
        assert response.status_code == 400

    def test_upload_for_missing_client(self, client, upload_dir):
        response = self.upload(client, 404)
        assert response.status_code == 404
        assert response.json()["error"] == "Client not found"
        assert list(upload_dir.iterdir()) == []

    def test_verify_and_delete(self, client):
        client_id = create_client(client)
        document_id = self.upload(client, client_id).json()["data"]["id"]

        missing_verifier = client.put(f"/api/documents/verify/{document_id}", json={})
        assert missing_verifier.status_code == 400
        assert missing_verifier.json()["error"] == "verifiedBy is required"

        verified = client.put(f"/api/documents/verify/{document_id}", json={"verifiedBy": "checker"})
        assert verified.status_code == 200
        assert verified.json()["data"]["isVerified"] is True
        assert verified.json()["data"]["verifiedBy"] == "checker"

        assert client.delete(f"/api/documents/{document_id}").status_code == 200
        assert client.get(f"/api/documents/file/{document_id}").status_code == 404
        assert client.put(f"/api/documents/verify/{document_id}", json={"verifiedBy": "checker"}).status_code == 404

    def test_kyc_download_without_document(self, client):
        client_id = create_client(client)
        response = client.get(f"/api/clients/{client_id}/documents/aadhaar/download")
        assert response.status_code == 404
        assert client.get(f"/api/clients/{client_id}/documents/passport/view").status_code == 400


class TestInstitutionEndpoints:

    def test_create_list_and_filter(self, client):
        create_institution(client)
        response = client.post("/api/institutions", json={
            "institutionType": "post_office",
            "institutionName": "Pune GPO",
            "address": {"addressLine1": "Main Road", "pincode": "411001", "city": "Pune"},
        })
        assert response.status_code == 201

        listed = client.get("/api/institutions").json()
        assert listed["count"] == 2
        pune = [i for i in listed["data"] if i["institutionName"] == "Pune GPO"][0]
        assert pune["city"] == "Pune"
        assert client.get("/api/institutions", params={"type": "post_office"}).json()["count"] == 1

    def test_delete_referenced_institution(self, client):
        institution_id = create_institution(client)
        create_account(client, institution_id)

        response = client.delete(f"/api/institutions/{institution_id}")

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert client.get(f"/api/institutions/{institution_id}").status_code == 200

    def test_delete_and_update(self, client):
        institution_id = create_institution(client)
        updated = client.put(f"/api/institutions/{institution_id}", json={"branchCode": "00999"})
        assert updated.json()["data"]["branchCode"] == "00999"
        assert client.delete(f"/api/institutions/{institution_id}").status_code == 200
        assert client.get(f"/api/institutions/{institution_id}").status_code == 404


class TestServerEndpoints:
    """Health, metrics, docs, CORS and error envelopes"""

    def test_health(self, client):
        client.get("/api/clients")

        for path in ("/health", "/api/health"):
            response = client.get(path)
            assert response.status_code == 200
            body = response.json()
            assert body["success"] is True
            assert body["status"] == "healthy"
            assert body["database"]["healthy"] is True
            assert body["database"]["foreign_keys"] is True
            assert "clients.get_all" in body["queryStats"]["operations"]

    def test_health_without_store(self, client):
        set_db_provider(DatabaseSessionProvider(settings=DatabaseSettings(path=":memory:")))
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"
        assert response.json()["database"]["error"] == "Database not initialized"

    @pytest.mark.asyncio
    async def test_async_transport(self, client):
        transport = ASGITransport(app=server.app)
        async with AsyncClient(transport=transport, base_url="http://test") as http:
            created = await http.post("/api/clients", json={"firstName": "Kiran", "lastName": "Rao"})
            listed = await http.get("/api/clients")

        assert created.status_code == 201
        assert [c["firstName"] for c in listed.json()["data"]] == ["Kiran"]

    def test_metrics(self, client):
        client.get("/api/clients")
        response = client.get("/api/metrics")
        assert response.status_code == 200
        assert "backoffice_db_query_duration_seconds" in response.text

    def test_docs_and_root_redirect(self, client):
        assert client.get("/api/docs").status_code == 200
        schema = client.get("/api/openapi.json").json()
        assert "/api/clients" in schema["paths"]
        assert "/api/documents/upload/{entity_type}/{entity_id}" in schema["paths"]

        redirect = client.get("/", follow_redirects=False)
        assert redirect.status_code in (302, 307)
        assert redirect.headers["location"] == "/api/docs"

    def test_cors_preflight(self, client):
        allowed = client.options("/api/clients", headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        })
        assert allowed.status_code == 200
        assert allowed.headers["access-control-allow-origin"] == "http://localhost:5173"

        blocked = client.options("/api/clients", headers={
            "Origin": "http://evil.example",
            "Access-Control-Request-Method": "POST",
        })
        assert "access-control-allow-origin" not in blocked.headers

    def test_request_id_echoed(self, client):
        response = client.get("/api/clients", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"
        assert "X-Processing-Time-MS" in response.headers

    def test_unhandled_error_envelope(self, client, monkeypatch):
        def boom(self, include_deleted=False):
            raise RuntimeError("store exploded")

        monkeypatch.setattr(ClientRepository, "get_count", boom)
        response = client.get("/api/clients/stats/count")

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "Internal server error",
            "message": "store exploded",
        }

    def test_unknown_route(self, client):
        response = client.get("/api/nowhere")
        assert response.status_code == 404
        assert response.json()["success"] is False
