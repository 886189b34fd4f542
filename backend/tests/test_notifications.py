def test_mark_one_and_all_read(client, workflow):
    for title in ("A", "B", "C"):
        inquiry = workflow.create_inquiry(title=title)
        workflow.submit(inquiry["id"])

    headers = workflow.users.vpp.headers
    r = client.get("/api/notifications", headers=headers)
    body = r.json()
    assert body["unread_count"] == 3
    assert body["pagination"]["total"] == 3
    first_id = body["data"][0]["id"]

    r = client.put(f"/api/notifications/{first_id}/read", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["is_read"] is True
    assert r.json()["data"]["read_at"] is not None

    r = client.get("/api/notifications", params={"unread": True}, headers=headers)
    assert r.json()["pagination"]["total"] == 2
    assert r.json()["unread_count"] == 2

    r = client.put("/api/notifications/read-all", headers=headers)
    assert r.json()["data"] == {"updated": 2}
    assert client.get("/api/notifications", headers=headers).json()["unread_count"] == 0


def test_cannot_read_someone_elses_notification(client, workflow):
    inquiry = workflow.create_inquiry()
    workflow.submit(inquiry["id"])
    note_id = workflow.notifications(workflow.users.vpp)[0]["id"]

    r = client.put(f"/api/notifications/{note_id}/read", headers=workflow.users.sales.headers)
    assert r.status_code == 404


def test_notifications_are_newest_first(client, workflow):
    for title in ("Old", "New"):
        inquiry = workflow.create_inquiry(title=title)
        workflow.submit(inquiry["id"])

    notes = workflow.notifications(workflow.users.vpp)
    assert '"New"' in notes[0]["message"]
    assert '"Old"' in notes[1]["message"]
