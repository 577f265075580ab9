# tests/integration/utils/helpers.py
import json

from fastapi.testclient import TestClient


# ---------- HTTP helpers (show server error bodies) ----------
def _post(client: TestClient, url: str, payload: dict | None = None) -> dict:
    r = client.post(url, json=payload)
    if r.status_code >= 400:
        raise AssertionError(
            f"{r.status_code} for {url}\n"
            f"Payload:\n{json.dumps(payload, indent=2)}\n"
            f"Response:\n{r.text}"
        )
    return r.json()


def _get(client: TestClient, url: str) -> dict:
    r = client.get(url)
    r.raise_for_status()
    return r.json()


def _create_session(client: TestClient, **body) -> tuple[str, dict]:
    sess = _post(client, "/sessions", body or None)
    return sess["id"], sess


def _place(client: TestClient, sid: str, row: int, col: int) -> dict:
    return _post(
        client,
        f"/sessions/{sid}/action",
        {"action": {"action": "placing", "position": [row, col]}},
    )


def _stones(game: dict) -> dict[tuple[int, int], str]:
    return {
        (r, c): cell["color"]
        for r, row in enumerate(game["board"])
        for c, cell in enumerate(row)
        if cell is not None
    }
