"""
Tests for the voice catalogue mirror

Tests sync replacement semantics and the filtered listing.
"""

import pytest


def _catalogue(count, prefix="v"):
    return [
        {
            "voice_id": f"{prefix}{i}",
            "name": f"Voice {i:03d}",
            "category": "premade" if i % 2 else "cloned",
            "description": "Warm narrator" if i == 1 else None,
            "preview_url": f"https://cdn.example.com/{prefix}{i}.mp3",
            "labels": {"gender": "female" if i % 2 else "male", "accent": "american", "age": "young"},
        }
        for i in range(count)
    ]


class TestVoiceSync:
    """Tests for /sync-elevenlabs-voices."""

    def test_sync_replaces_mirror(self, client, database, mock_elevenlabs):
        database.execute("INSERT INTO elevenlabs_voices (id, name) VALUES ('stale', 'Old voice')")
        mock_elevenlabs.list_voices.return_value = _catalogue(3)

        response = client.post("/sync-elevenlabs-voices")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["voicesCount"] == 3
        assert body["message"] == "Successfully synced 3 voices from ElevenLabs"
        assert body["voices"][0] == {"id": "v0", "name": "Voice 000", "category": "cloned"}
        ids = {row["id"] for row in database.fetch_all("SELECT id FROM elevenlabs_voices")}
        assert ids == {"v0", "v1", "v2"}

    def test_sync_accepts_get(self, client, mock_elevenlabs):
        mock_elevenlabs.list_voices.return_value = []

        response = client.get("/sync-elevenlabs-voices")

        assert response.status_code == 200
        assert response.json()["voicesCount"] == 0

    def test_sync_in_batches(self, database, mock_elevenlabs):
        from retailiq.services.voices import VoiceService

        mock_elevenlabs.list_voices.return_value = _catalogue(250)

        result = VoiceService(database, mock_elevenlabs).sync()

        assert result["voicesCount"] == 250
        assert database.fetch_value("SELECT COUNT(*) FROM elevenlabs_voices") == 250

    def test_failed_batch_keeps_previous_mirror(self, database, mock_elevenlabs):
        from retailiq.services.voices import VoiceService

        database.execute("INSERT INTO elevenlabs_voices (id, name) VALUES ('keep', 'Existing')")
        # Duplicate ids violate the primary key in the second batch
        catalogue = _catalogue(150)
        catalogue[120]["voice_id"] = "v5"
        mock_elevenlabs.list_voices.return_value = catalogue

        with pytest.raises(Exception):
            VoiceService(database, mock_elevenlabs).sync()

        ids = [row["id"] for row in database.fetch_all("SELECT id FROM elevenlabs_voices")]
        assert ids == ["keep"]

    def test_voice_row_labels(self):
        from retailiq.services.voices import voice_row

        row = voice_row(_catalogue(2)[1], "2026-01-01T00:00:00+00:00")

        assert row["id"] == "v1"
        assert row["gender"] == "female"
        assert row["use_case"] is None
        assert row["labels"]["accent"] == "american"


class TestVoiceListing:
    """Tests for GET /get-voices."""

    @pytest.fixture(autouse=True)
    def mirror(self, database, mock_elevenlabs):
        from retailiq.services.voices import VoiceService

        mock_elevenlabs.list_voices.return_value = _catalogue(5)
        VoiceService(database, mock_elevenlabs).sync()

    def test_defaults(self, client):
        response = client.get("/get-voices")

        assert response.status_code == 200
        body = response.json()
        assert [v["name"] for v in body["voices"]] == [f"Voice {i:03d}" for i in range(5)]
        assert body["pagination"] == {"total": 5, "limit": 50, "offset": 0, "hasMore": False}
        assert body["filters"]["genders"] == ["female", "male"]
        assert body["filters"]["categories"] == ["cloned", "premade"]
        assert body["filters"]["useCases"] == []
        assert body["meta"]["count"] == 5
        assert body["voices"][0]["labels"]["gender"] == "male"

    def test_filter_and_sort(self, client):
        response = client.get("/get-voices", params={"gender": "female", "sort_by": "name", "sort_order": "desc"})

        names = [v["name"] for v in response.json()["voices"]]
        assert names == ["Voice 003", "Voice 001"]

    def test_total_ignores_filters(self, client):
        response = client.get("/get-voices", params={"gender": "female"})

        assert response.json()["pagination"]["total"] == 5

    def test_search_is_case_insensitive(self, client):
        response = client.get("/get-voices", params={"search": "WARM"})

        assert [v["id"] for v in response.json()["voices"]] == ["v1"]

    def test_pagination(self, client):
        response = client.get("/get-voices", params={"limit": 2, "offset": 2})

        body = response.json()
        assert [v["id"] for v in body["voices"]] == ["v2", "v3"]
        assert body["pagination"]["hasMore"] is True

    def test_zero_limit_returns_everything(self, client):
        response = client.get("/get-voices", params={"limit": 0})

        assert response.json()["meta"]["count"] == 5

    def test_zero_limit_still_applies_offset(self, client):
        response = client.get("/get-voices", params={"limit": 0, "offset": 3})

        body = response.json()
        assert [v["id"] for v in body["voices"]] == ["v3", "v4"]
        assert body["pagination"]["hasMore"] is False

    def test_negative_offset(self, client):
        response = client.get("/get-voices", params={"offset": -1})

        assert response.status_code == 400
        assert response.json()["error"] == "limit and offset must be non-negative"

    def test_unknown_sort_column_falls_back_to_name(self, client):
        response = client.get("/get-voices", params={"sort_by": "id; DROP TABLE elevenlabs_voices"})

        assert response.status_code == 200
        assert response.json()["meta"]["query_params"]["sort_by"] == "name"
        assert response.json()["meta"]["count"] == 5

    def test_invalid_limit(self, client):
        response = client.get("/get-voices", params={"limit": "lots"})

        assert response.status_code == 400
