from collections.abc import Iterator
from http import HTTPStatus
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from pytest_assume.plugin import assume

from app.main import api, store as store_dependency
from app.persistence.memory import MemoryStore


@pytest.fixture
def client(memory_store: MemoryStore) -> Iterator[TestClient]:
    """
    API client backed by an empty memory store.
    """
    api.dependency_overrides[store_dependency] = lambda: memory_store
    yield TestClient(api)
    api.dependency_overrides.clear()


@pytest.fixture
def headers(owner_id: str) -> dict[str, str]:
    return {"X-User-Id": owner_id}


def _create(
    client: TestClient,
    headers: dict[str, str],
    description: str = "Take medication",
) -> dict:
    res = client.post(
        "/reminder",
        headers=headers,
        json={
            "description": description,
            "recurrence": {"type": "DAILY"},
            "recurrence_time": "08:00",
        },
    )
    assert res.status_code == HTTPStatus.CREATED
    return res.json()


def test_health(client: TestClient) -> None:
    assume(client.get("/health/liveness").status_code == HTTPStatus.OK)

    res = client.get("/health/readiness")
    assume(res.status_code == HTTPStatus.OK)
    assume(res.json()["status"] == "ok")


def test_create(
    client: TestClient,
    headers: dict[str, str],
    owner_id: str,
) -> None:
    """
    Test a created reminder belongs to the caller and is anchored now.
    """
    reminder = _create(client, headers)
    assume(reminder["owner_id"] == owner_id)
    assume(reminder["description"] == "Take medication")
    assume(reminder["recurrence"] == {"type": "DAILY"})
    # Fixed width UTC timestamps
    assume(reminder["created_at"].endswith("Z"))
    assume(len(reminder["created_at"]) == len("2024-01-10T09:30:00.000000Z"))


def test_missing_owner(client: TestClient) -> None:
    """
    Test requests without caller identity are rejected.
    """
    res = client.get("/reminder")
    assume(res.status_code == HTTPStatus.UNAUTHORIZED)
    assume(res.json()["error"]["message"])

    res = client.post(
        "/reminder",
        json={
            "description": "Take medication",
            "recurrence": {"type": "DAILY"},
            "recurrence_time": "08:00",
        },
    )
    assume(res.status_code == HTTPStatus.UNAUTHORIZED)


@pytest.mark.parametrize(
    "start_date, end_date",
    [
        pytest.param("2020-01-01", "2100-12-31", id="iso"),
        pytest.param("2020/01/01", "2100/12/31", id="slashes"),
        pytest.param("2020.01.01", "2100.12.31", id="dots"),
        pytest.param("01-01-2020", "12-31-2100", id="month_first"),
        pytest.param("01/01/2020", "12/31/2100", id="month_first_slashes"),
        pytest.param("01.01.2020", "12.31.2100", id="month_first_dots"),
    ],
)
def test_list_date_formats(
    client: TestClient,
    end_date: str,
    headers: dict[str, str],
    start_date: str,
) -> None:
    """
    Test query days are accepted in the common formats.
    """
    reminder = _create(client, headers)

    res = client.get(
        "/reminder",
        headers=headers,
        params={"end_date": end_date, "start_date": start_date},
    )
    assume(res.status_code == HTTPStatus.OK)
    assume([x["reminder_id"] for x in res.json()] == [reminder["reminder_id"]])


def test_list_search(
    client: TestClient,
    headers: dict[str, str],
) -> None:
    medication = _create(client, headers, description="Take medication")
    _create(client, headers, description="Water the plants")

    res = client.get("/reminder", headers=headers, params={"search": "MEDIC"})
    assume(res.status_code == HTTPStatus.OK)
    assume([x["reminder_id"] for x in res.json()] == [medication["reminder_id"]])

    # Other owners see nothing
    res = client.get("/reminder", headers={"X-User-Id": "someone-else"})
    assume(res.json() == [])


def test_list_invalid(
    client: TestClient,
    headers: dict[str, str],
) -> None:
    """
    Test malformed windows are rejected.
    """
    # Reversed window
    res = client.get(
        "/reminder",
        headers=headers,
        params={"end_date": "2024-01-12", "start_date": "2024-01-16"},
    )
    assume(res.status_code == HTTPStatus.BAD_REQUEST)
    assume(res.json()["error"]["message"])

    # Unknown date
    res = client.get(
        "/reminder",
        headers=headers,
        params={"start_date": "2024-13-01"},
    )
    assume(res.status_code == HTTPStatus.UNPROCESSABLE_ENTITY)
    assume(res.json()["error"]["details"])


def test_invalid_body(
    client: TestClient,
    headers: dict[str, str],
) -> None:
    res = client.post(
        "/reminder",
        headers=headers,
        json={
            "description": "Take medication",
            "recurrence": {"type": "INTERVAL", "days": -1},
            "recurrence_time": "25:00",
        },
    )
    assume(res.status_code == HTTPStatus.UNPROCESSABLE_ENTITY)
    assume(len(res.json()["error"]["details"]) == 2)


def test_lifecycle(
    client: TestClient,
    headers: dict[str, str],
) -> None:
    """
    Test the reminder lifecycle through the API.

    Steps:
    1. Create a reminder
    2. Read it, from its owner and from someone else
    3. Replace it
    4. Delete it
    """
    reminder = _create(client, headers)
    url = f"/reminder/{reminder['reminder_id']}"

    # Read
    res = client.get(url, headers=headers)
    assume(res.status_code == HTTPStatus.OK)
    assume(res.json() == reminder)
    res = client.get(url, headers={"X-User-Id": "someone-else"})
    assume(res.status_code == HTTPStatus.NOT_FOUND)
    res = client.get(f"/reminder/{uuid4()}", headers=headers)
    assume(res.status_code == HTTPStatus.NOT_FOUND)

    # Replace
    res = client.put(
        url,
        headers=headers,
        json={
            "description": "Farmers market",
            "recurrence": {"type": "DAY_OF_THE_WEEK", "day": "Saturday"},
            "recurrence_time": "09:00",
        },
    )
    assume(res.status_code == HTTPStatus.OK)
    updated = res.json()
    assume(updated["description"] == "Farmers market")
    assume(updated["recurrence"] == {"type": "DAY_OF_THE_WEEK", "day": "Saturday"})
    assume(updated["created_at"] == reminder["created_at"])

    # Delete
    res = client.delete(url, headers=headers)
    assume(res.status_code == HTTPStatus.NO_CONTENT)
    res = client.delete(url, headers=headers)
    assume(res.status_code == HTTPStatus.NOT_FOUND)
    res = client.get(url, headers=headers)
    assume(res.status_code == HTTPStatus.NOT_FOUND)
