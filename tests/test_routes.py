import pytest
from fastapi.testclient import TestClient

from conftest import cut_lot, run_stage
from database import get_db
from deps.auth import get_current_user, get_password_hash
from excel.export_stage import XLSX_MEDIA_TYPE
from main import app
from services.stages import STITCHING, FINISHING

API = "/api/v1"


@pytest.fixture()
def client(db):
    current = {}

    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_current_user] = lambda: current["user"]
    with TestClient(app) as c:
        c.login = lambda user: current.__setitem__("user", user)
        yield c
    app.dependency_overrides.clear()


def test_create_lot_json(client, people):
    client.login(people.manager)
    r = client.post(f"{API}/cutting/create-lot", json={
        "sku": "JN-501",
        "sizes": {"S": 2, "M": 1},
        "rolls": [{"roll_no": "R1", "layers": 10}],
    })
    assert r.status_code == 200
    lot = r.json()["lot"]
    assert lot["lot_no"] == "ak1"
    assert lot["total_pieces"] == 30

    listed = client.get(f"{API}/cutting/lots").json()
    assert [l["lot_no"] for l in listed["data"]] == ["ak1"]
    assert client.get(f"{API}/cutting/lots/{lot['id']}").json()["sku"] == "JN-501"


def test_create_lot_form_redirects(client, people):
    client.login(people.manager)
    r = client.post(
        f"{API}/cutting/create-lot",
        data={"sku": "JN-7", "sizes[S]": "3", "rolls": '[{"roll_no": "R1", "layers": "4"}]'},
        follow_redirects=False,
    )
    assert r.status_code == 303
    assert r.headers["location"] == f"{API}/cutting/lots"
    assert client.get(f"{API}/cutting/lots").json()["data"][0]["total_pieces"] == 12


def test_role_is_enforced(client, people):
    client.login(people.stitcher)
    r = client.post(f"{API}/cutting/create-lot", json={"sku": "X"})
    assert r.status_code == 403
    assert r.json() == {"error": "Need any of: cutting_manager"}


def test_role_rejection_on_form_post_flashes(client, people):
    client.login(people.stitcher)
    back = f"http://testserver{API}/stitching"
    r = client.post(f"{API}/cutting/create-lot", data={"sku": "X"},
                    headers={"referer": back}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == back
    assert "Need any of: cutting_manager" in client.get(f"{API}/stitching").text


def test_stitching_flow_over_http(client, db, people):
    lot = cut_lot(db, people.manager, {"S": 1}, layers=20)

    client.login(people.manager)
    r = client.post(f"{API}/cutting/assign-stitching",
                    json={"source_id": lot.id, "assignee_id": people.stitcher.id})
    assert r.status_code == 200
    assignment_id = r.json()["assignment_id"]

    client.login(people.stitcher)
    pending = client.get(f"{API}/stitching/approve").json()
    assert [a["id"] for a in pending] == [assignment_id]
    assert pending[0]["state"] == "pending"

    r = client.post(f"{API}/stitching/approve-lot", json={"assignment_id": assignment_id})
    assert r.json()["assignment"]["state"] == "approved"
    assert [a["id"] for a in client.get(f"{API}/stitching/approved").json()] == [assignment_id]

    sizes = client.get(f"{API}/stitching/get-lot-sizes/{assignment_id}").json()
    assert sizes == [{"size_label": "S", "total_pieces": 20, "used": 0, "remain": 20, "assigned": None}]

    r = client.post(f"{API}/stitching/create", json={"assignment_id": assignment_id, "sizes": {"S": 25}})
    assert r.status_code == 400
    assert r.json() == {"error": "Requested pieces for size [S] exceed remaining. Max remain is 20."}

    r = client.post(f"{API}/stitching/create", json={"assignment_id": assignment_id, "sizes": {"S": 15}})
    assert r.status_code == 200
    record_id = r.json()["id"]

    r = client.post(f"{API}/stitching/update/{record_id}", json={"sizes": {"S": 9}})
    assert r.status_code == 400
    assert r.json()["error"] == "Cannot add 9 to size [S]. Max remain is 5."

    r = client.post(f"{API}/stitching/update/{record_id}", data={"sizes[S]": "5"}, follow_redirects=False)
    assert r.status_code == 303

    entries = client.get(f"{API}/stitching/list-entries").json()
    assert entries["data"][0]["total_pieces"] == 20
    assert entries["hasMore"] is False
    assert client.get(f"{API}/stitching/update/{record_id}/json").json()["sizes"][0]["remain"] == 0

    challan = client.get(f"{API}/stitching/challan/{record_id}")
    assert challan.status_code == 200
    assert lot.lot_no in challan.text

    xlsx = client.get(f"{API}/stitching/download-all")
    assert xlsx.headers["content-type"] == XLSX_MEDIA_TYPE


def test_form_errors_flash_and_redirect_back(client, db, people):
    lot = cut_lot(db, people.manager, {"S": 1}, layers=20)
    client.login(people.manager)
    assignment_id = client.post(f"{API}/cutting/assign-stitching",
                                json={"source_id": lot.id, "assignee_id": people.stitcher.id}).json()["assignment_id"]

    client.login(people.stitcher)
    back = f"http://testserver{API}/stitching"
    r = client.post(f"{API}/stitching/deny-lot", data={"assignment_id": str(assignment_id), "remark": ""},
                    headers={"referer": back}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == back

    page = client.get(f"{API}/stitching")
    assert page.status_code == 200
    assert "Denial remark is required" in page.text
    assert lot.lot_no in page.text

    r = client.post(f"{API}/stitching/deny-lot", json={"assignment_id": assignment_id, "remark": "fabric defect"})
    assert r.json()["assignment"]["state"] == "denied"


def test_assign_next_stage_picks_the_chain(client, db, people):
    lot = cut_lot(db, people.hosiery_manager, {"S": 1}, layers=10)
    st = run_stage(db, STITCHING, assigner=people.hosiery_manager, worker=people.stitcher,
                   source=lot, sizes={"S": 10})
    client.login(people.stitcher)
    r = client.post(f"{API}/stitching/assign", json={"source_id": st.id, "assignee_id": people.finisher.id})
    assert r.status_code == 200
    assert r.json()["stage"] == "finishing"


def test_dispatch_over_http(client, db, people):
    lot = cut_lot(db, people.hosiery_manager, {"S": 1}, layers=10)
    st = run_stage(db, STITCHING, assigner=people.hosiery_manager, worker=people.stitcher,
                   source=lot, sizes={"S": 10})
    fin = run_stage(db, FINISHING, assigner=people.stitcher, worker=people.finisher, source=st, sizes={"S": 10})

    client.login(people.finisher)
    r = client.post(f"{API}/finishing/dispatch/{fin.id}",
                    json={"destination": "Warehouse", "quantities": {"S": 4}})
    assert r.status_code == 200
    assert r.json()["dispatches"][0]["quantity"] == 4

    r = client.post(f"{API}/finishing/dispatch-all/{fin.id}", json={"destination": "Warehouse"})
    assert r.json()["dispatches"][0]["quantity"] == 6
    assert client.get(f"{API}/finishing/dispatch/{fin.id}/json").json()["fully_dispatched"] is True


def test_operator_reports(client, db, people, denim_chain):
    client.login(people.operator)
    rows = client.get(f"{API}/operator/pic-report", params={"lot_type": "denim"}).json()["data"]
    assert rows[0]["washing_status"] == "Completed"
    assert rows[0]["washing_in_status"] == "In Washing"

    r = client.get(f"{API}/operator/pic-report", params={"download": 1})
    assert r.headers["content-type"] == XLSX_MEDIA_TYPE

    status = client.get(f"{API}/operator/lot-status/{denim_chain['lot'].lot_no}").json()
    assert status["stitching_op"] == "sara"
    assert client.get(f"{API}/operator/lot-status/missing").status_code == 404

    pend = client.get(f"{API}/operator/pendency", params={"dept": "washing"}).json()["data"]
    assert pend[0]["pending"] == 0
    assert client.get(f"{API}/operator/pendency", params={"dept": "nope"}).status_code == 400
    assert client.get(f"{API}/operator/leftovers").json()["data"][0]["lot_no"] == denim_chain["lot"].lot_no

    client.login(people.stitcher)
    assert client.get(f"{API}/operator/pic-report").status_code == 403


def test_token_login_sets_cookie(client, db, make_user):
    user = make_user("admin1", "admin")
    user.password_hash = get_password_hash("s3cret")
    db.commit()
    app.dependency_overrides.pop(get_current_user)

    assert client.get(f"{API}/auth/me").status_code == 401
    bad = client.post(f"{API}/auth/token", data={"username": "admin1", "password": "nope"})
    assert bad.status_code == 400

    r = client.post(f"{API}/auth/token", data={"username": "admin1", "password": "s3cret"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"
    me = client.get(f"{API}/auth/me")
    assert me.json()["username"] == "admin1"
    assert me.json()["role"] == "admin"
