"""Ticket endpoints through the FastAPI app"""
import pytest

TICKETS = "/api/v1/tickets"


def error_code(response):
    return response.json()["detail"]["error"]["code"]


@pytest.fixture
def laptop(client, auth, seeded):
    response = client.post(
        f"{TICKETS}/",
        json={
            "title": "Laptop broken",
            "description": "Screen flickers",
            "target_business_group_id": seeded.it_support.group_id,
            "category_id": seeded.hardware.category_id,
            "subcategory_id": seeded.laptop.subcategory_id,
        },
        headers=auth(seeded.initiator)
    )
    assert response.status_code == 201
    return response.json()


def test_missing_token(client, seeded):
    response = client.get(f"{TICKETS}/")
    assert response.status_code == 401
    assert error_code(response) == "AUTHENTICATION_ERROR"


def test_token_without_email(client, make_token, seeded):
    token = make_token(oid="aad-anon")
    response = client.get(f"{TICKETS}/", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_create_and_read(client, auth, seeded, laptop):
    assert laptop["ticket_id"].startswith("TKT-")
    assert laptop["ticket_number"] == 1

    response = client.get(f"{TICKETS}/{laptop['ticket_id']}", headers=auth(seeded.spoc))
    assert response.status_code == 200
    body = response.json()
    ticket = body["ticket"]
    assert ticket["status"] == "open"
    assert ticket["spoc"]["email"] == seeded.spoc.email
    assert ticket["estimated_duration"] == "8 hr"
    assert ticket["is_internal"] is True
    assert ticket["attachment_count"] == 0
    assert body["comments"] == []
    assert body["child_tickets"] == []


def test_blank_title_is_a_validation_error(client, auth, seeded):
    response = client.post(f"{TICKETS}/", json={"title": "   "}, headers=auth(seeded.initiator))
    assert response.status_code == 400
    assert error_code(response) == "VALIDATION_ERROR"


def test_unknown_ticket(client, auth, seeded):
    response = client.get(f"{TICKETS}/TKT-209901-00001", headers=auth(seeded.initiator))
    assert response.status_code == 404
    assert error_code(response) == "TICKET_NOT_FOUND"


def test_correlation_id_is_echoed(client, auth, seeded):
    response = client.get(
        f"{TICKETS}/", headers={**auth(seeded.initiator), "X-Correlation-Id": "corr-123"}
    )
    assert response.headers["X-Correlation-Id"] == "corr-123"


def test_list_filters(client, auth, seeded, laptop):
    client.post(f"{TICKETS}/", json={"title": "Printer jam", "priority": "urgent"}, headers=auth(seeded.outsider))
    headers = auth(seeded.admin)

    everything = client.get(f"{TICKETS}/", params={"status": "all", "ticket_type": "all"}, headers=headers).json()
    assert everything["total"] == 2
    assert everything["page"] == 1

    urgent = client.get(f"{TICKETS}/", params={"priority": "urgent"}, headers=headers).json()
    assert [t["title"] for t in urgent["items"]] == ["Printer jam"]

    searched = client.get(f"{TICKETS}/", params={"q": "laptop"}, headers=headers).json()
    assert [t["ticket_id"] for t in searched["items"]] == [laptop["ticket_id"]]

    internal = client.get(f"{TICKETS}/", params={"is_internal": "true"}, headers=headers).json()
    assert [t["ticket_id"] for t in internal["items"]] == [laptop["ticket_id"]]


def test_list_rejects_unknown_status(client, auth, seeded):
    response = client.get(f"{TICKETS}/", params={"status": "pending"}, headers=auth(seeded.admin))
    assert response.status_code == 400
    assert error_code(response) == "VALIDATION_ERROR"


def test_deleted_listing_is_admin_only(client, auth, seeded):
    response = client.get(f"{TICKETS}/", params={"include_deleted": "true"}, headers=auth(seeded.initiator))
    assert response.status_code == 403
    assert error_code(response) == "PERMISSION_DENIED"


def test_edit(client, auth, seeded, laptop):
    ticket_id = laptop["ticket_id"]

    response = client.patch(
        f"{TICKETS}/{ticket_id}",
        json={"title": "Laptop screen broken", "description": "Flickers after boot"},
        headers=auth(seeded.initiator)
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Laptop screen broken"
    assert response.json()["version"] == 2

    refused = client.patch(f"{TICKETS}/{ticket_id}", json={"status": "closed"}, headers=auth(seeded.initiator))
    assert refused.status_code == 400

    priority = client.patch(f"{TICKETS}/{ticket_id}", json={"priority": "high"}, headers=auth(seeded.initiator))
    assert priority.status_code == 403
    assert error_code(priority) == "PERMISSION_DENIED"

    by_spoc = client.patch(f"{TICKETS}/{ticket_id}", json={"title": "Renamed"}, headers=auth(seeded.spoc))
    assert by_spoc.status_code == 403

    by_admin = client.patch(f"{TICKETS}/{ticket_id}", json={"priority": "high"}, headers=auth(seeded.admin))
    assert by_admin.json()["priority"] == "high"

    stale = client.patch(
        f"{TICKETS}/{ticket_id}",
        json={"title": "Again", "expected_version": 1},
        headers=auth(seeded.initiator)
    )
    assert stale.status_code == 409
    assert error_code(stale) == "CONCURRENCY_CONFLICT"


def test_status_flow(client, auth, seeded, laptop):
    ticket_id = laptop["ticket_id"]

    no_reason = client.post(f"{TICKETS}/{ticket_id}/status", json={"status": "on-hold"}, headers=auth(seeded.spoc))
    assert no_reason.status_code == 400

    hold = client.post(
        f"{TICKETS}/{ticket_id}/status",
        json={"status": "on-hold", "reason": "Waiting on vendor"},
        headers=auth(seeded.spoc)
    )
    assert hold.status_code == 200
    assert hold.json()["ticket"]["status"] == "on-hold"

    denied = client.post(
        f"{TICKETS}/{ticket_id}/status",
        json={"status": "closed", "reason": "Done"},
        headers=auth(seeded.spoc)
    )
    assert denied.status_code == 403

    closed = client.post(
        f"{TICKETS}/{ticket_id}/status",
        json={"status": "closed", "reason": "Done"},
        headers=auth(seeded.initiator)
    )
    assert closed.json()["ticket"]["status"] == "closed"

    log = client.get(f"{TICKETS}/{ticket_id}/audit-log", headers=auth(seeded.initiator)).json()["items"]
    assert sorted(e["action_type"] for e in log) == ["created", "status_change", "status_change"]


def test_token_admin_role(client, auth, seeded, laptop):
    response = client.post(
        f"{TICKETS}/{laptop['ticket_id']}/status",
        json={"status": "resolved", "reason": "Replaced screen"},
        headers=auth(seeded.outsider, roles=["Admin"])
    )
    assert response.status_code == 200


def test_delete_and_restore(client, auth, seeded, laptop):
    ticket_id = laptop["ticket_id"]

    deleted = client.delete(f"{TICKETS}/{ticket_id}", headers=auth(seeded.initiator))
    assert deleted.status_code == 200
    assert client.get(f"{TICKETS}/", headers=auth(seeded.initiator)).json()["total"] == 0

    not_admin = client.post(f"{TICKETS}/{ticket_id}/restore", headers=auth(seeded.initiator))
    assert not_admin.status_code == 403

    restored = client.post(f"{TICKETS}/{ticket_id}/restore", headers=auth(seeded.admin))
    assert restored.status_code == 200
    assert restored.json()["ticket"]["status"] == "open"
    assert restored.json()["ticket"]["is_deleted"] is False


def test_redirect(client, auth, seeded, laptop):
    response = client.post(
        f"{TICKETS}/{laptop['ticket_id']}/redirect",
        json={
            "target_business_group_id": seeded.apps.group_id,
            "spoc_user_id": seeded.second_spoc.user_id,
            "remarks": "Belongs to applications",
        },
        headers=auth(seeded.spoc)
    )
    assert response.status_code == 200
    ticket = response.json()["ticket"]
    assert ticket["target_business_group"]["name"] == "Business Applications"
    assert ticket["spoc"]["email"] == seeded.second_spoc.email

    missing_remarks = client.post(
        f"{TICKETS}/{laptop['ticket_id']}/redirect",
        json={"target_business_group_id": seeded.it_support.group_id, "spoc_user_id": seeded.spoc.user_id},
        headers=auth(seeded.second_spoc)
    )
    assert missing_remarks.status_code == 400


def test_assignee_and_project(client, auth, seeded, laptop):
    ticket_id = laptop["ticket_id"]

    assigned = client.put(
        f"{TICKETS}/{ticket_id}/assignee",
        json={"assignee_user_id": seeded.assignee.user_id},
        headers=auth(seeded.spoc)
    )
    assert assigned.status_code == 200
    assert assigned.json()["ticket"]["assigned_to"]["email"] == seeded.assignee.email

    denied = client.put(f"{TICKETS}/{ticket_id}/assignee", json={"assignee_user_id": None}, headers=auth(seeded.outsider))
    assert denied.status_code == 403

    project = client.put(
        f"{TICKETS}/{ticket_id}/project",
        json={"project_id": seeded.project.project_id},
        headers=auth(seeded.initiator)
    )
    assert project.json()["ticket"]["project_name"] == "Office Migration"

    team = client.get(f"{TICKETS}/", params={"my_team": "true"}, headers=auth(seeded.spoc)).json()
    assert [t["ticket_id"] for t in team["items"]] == [ticket_id]


def test_comments(client, auth, seeded, laptop):
    ticket_id = laptop["ticket_id"]

    created = client.post(f"{TICKETS}/{ticket_id}/comments", json={"content": "Any update?"}, headers=auth(seeded.initiator))
    assert created.status_code == 201
    comment_id = created.json()["comment_id"]

    listed = client.get(f"{TICKETS}/{ticket_id}/comments", headers=auth(seeded.spoc)).json()["items"]
    assert [c["content"] for c in listed] == ["Any update?"]

    denied = client.delete(f"{TICKETS}/comments/{comment_id}", headers=auth(seeded.spoc))
    assert denied.status_code == 403

    deleted = client.delete(f"{TICKETS}/comments/{comment_id}", headers=auth(seeded.initiator))
    assert deleted.status_code == 200
    assert client.get(f"{TICKETS}/{ticket_id}/comments", headers=auth(seeded.spoc)).json()["items"] == []


def test_child_tickets(client, auth, seeded, laptop):
    child = client.post(
        f"{TICKETS}/",
        json={"title": "Order new screen", "parent_ticket_id": laptop["ticket_id"]},
        headers=auth(seeded.spoc)
    ).json()

    children = client.get(f"{TICKETS}/{laptop['ticket_id']}/children", headers=auth(seeded.initiator)).json()
    assert [c["ticket_id"] for c in children["items"]] == [child["ticket_id"]]

    parents = client.get(f"{TICKETS}/", params={"has_children": "true"}, headers=auth(seeded.admin)).json()
    assert [t["ticket_id"] for t in parents["items"]] == [laptop["ticket_id"]]
    assert parents["items"][0]["child_ticket_count"] == 1
