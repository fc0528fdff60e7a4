import datetime
import os
from unittest.mock import MagicMock, patch

import pytest

from ecshell.exceptions import QueryFailure
from ecshell.query_cache import Query, QueryCache


def make_query(**params):
    params = params or {"cluster": "prod", "desiredStatus": "RUNNING"}
    return Query("ecs", "list_tasks", profile="ops", region="eu-west-1", params=params)


class TestQuery:
    def test_signature_ignores_param_order(self):
        q1 = Query("ecs", "list_tasks", params={"cluster": "prod", "serviceName": "web"})
        q2 = Query("ecs", "list_tasks", params={"serviceName": "web", "cluster": "prod"})
        assert q1.signature == q2.signature
        assert q1.digest == q2.digest

    def test_signature_changes_with_every_input(self):
        base = make_query()
        variants = [
            Query("ecs", "list_tasks", profile="other", region="eu-west-1", params=base.params),
            Query("ecs", "list_tasks", profile="ops", region="us-east-1", params=base.params),
            make_query(cluster="staging", desiredStatus="RUNNING"),
            Query("ecs", "list_services", profile="ops", region="eu-west-1", params=base.params),
        ]
        digests = {base.digest} | {q.digest for q in variants}
        assert len(digests) == 5

    def test_execute_plain_call(self):
        client = MagicMock()
        client.list_tasks.return_value = {"taskArns": ["a"]}
        assert make_query().execute(client) == {"taskArns": ["a"]}
        client.list_tasks.assert_called_once_with(cluster="prod", desiredStatus="RUNNING")

    def test_execute_paginated_call(self):
        client = MagicMock()
        paginator = client.get_paginator.return_value
        paginator.paginate.return_value.build_full_result.return_value = {"serviceArns": ["s"]}
        query = Query("ecs", "list_services", params={"cluster": "prod"}, paginate=True)
        assert query.execute(client) == {"serviceArns": ["s"]}
        client.get_paginator.assert_called_once_with("list_services")
        paginator.paginate.assert_called_once_with(cluster="prod")


class TestQueryCache:
    @pytest.fixture
    def executor(self):
        return MagicMock(return_value={"taskArns": ["arn:aws:ecs:task/prod/abc123"]})

    @pytest.fixture
    def cache(self, tmp_path, executor):
        return QueryCache(str(tmp_path), "prod", "eu-west-1", executor)

    def test_second_fetch_within_ttl_uses_cache(self, cache, executor):
        first = cache.fetch(make_query(), ttl=60)
        second = cache.fetch(make_query(), ttl=60)
        assert first == second
        assert executor.call_count == 1

    def test_force_refresh_always_executes(self, cache, executor):
        cache.fetch(make_query(), ttl=60)
        cache.fetch(make_query(), ttl=60, force_refresh=True)
        cache.fetch(make_query(), ttl=60, force_refresh=True)
        assert executor.call_count == 3

    def test_stale_entry_is_refetched_once(self, cache, executor):
        query = make_query()
        cache.fetch(query, ttl=60)
        old = os.path.getmtime(cache.path_for(query)) - 120
        os.utime(cache.path_for(query), (old, old))

        cache.fetch(query, ttl=60)
        cache.fetch(query, ttl=60)
        assert executor.call_count == 2

    def test_failed_query_is_not_cached(self, cache, executor):
        executor.side_effect = QueryFailure("boom")
        with pytest.raises(QueryFailure, match="boom"):
            cache.fetch(make_query(), ttl=60)
        assert not os.path.exists(cache.path_for(make_query()))

        executor.side_effect = None
        assert cache.fetch(make_query(), ttl=60) == executor.return_value
        assert executor.call_count == 2

    def test_failed_refresh_keeps_previous_entry(self, cache, executor):
        query = make_query()
        cache.fetch(query, ttl=60)
        executor.side_effect = QueryFailure("boom")
        with pytest.raises(QueryFailure):
            cache.fetch(query, ttl=60, force_refresh=True)
        executor.side_effect = None
        assert cache.fetch(query, ttl=60) == executor.return_value
        assert executor.call_count == 2

    def test_clusters_and_regions_do_not_collide(self, tmp_path, executor):
        caches = [
            QueryCache(str(tmp_path), "prod", "eu-west-1", executor),
            QueryCache(str(tmp_path), "staging", "eu-west-1", executor),
            QueryCache(str(tmp_path), "prod", "us-east-1", executor),
        ]
        for cache in caches:
            cache.fetch(make_query(), ttl=60)
        assert executor.call_count == 3
        assert len({cache.path_for(make_query()) for cache in caches}) == 3

    def test_entry_layout(self, tmp_path, cache):
        query = make_query()
        cache.fetch(query, ttl=60)
        expected = tmp_path / "prod" / "eu-west-1" / f"{query.digest}.json"
        assert expected.exists()

    def test_corrupt_entry_is_a_miss(self, cache, executor):
        query = make_query()
        cache.fetch(query, ttl=60)
        with open(cache.path_for(query), "w") as f:
            f.write("{ not json")
        assert cache.fetch(query, ttl=60) == executor.return_value
        assert executor.call_count == 2

    def test_datetimes_are_serialized(self, cache, executor):
        executor.return_value = {"createdAt": datetime.datetime(2024, 1, 2, 3, 4, 5)}
        fresh = cache.fetch(make_query(), ttl=60)
        cached = cache.fetch(make_query(), ttl=60)
        assert fresh == cached == {"createdAt": "2024-01-02 03:04:05"}

    @patch("ecshell.query_cache.tempfile.mkstemp")
    def test_unwritable_cache_still_returns_result(self, mock_mkstemp, cache, executor):
        mock_mkstemp.side_effect = PermissionError("Read-only file system")

        assert cache.fetch(make_query(), ttl=60) == executor.return_value
        assert not os.path.exists(cache.path_for(make_query()))
