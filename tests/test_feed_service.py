"""
Tests for the feed lifecycle: pending computation, push, skip and promotion.
"""

import json
from unittest.mock import MagicMock

import pytest
from requests.auth import HTTPBasicAuth

from feedpush.domain.artifact import ArtifactInstance
from feedpush.domain.operation import PublishStatus
from feedpush.exit_codes import ConfigError, FeedStateError, InvalidArgumentError, TransportError
from feedpush.services.credentials import ENDPOINTS_ENV_VAR
from feedpush.services.feed_service import (
    FEED_CAPABILITIES,
    FeedKind,
    FeedPublisher,
    FeedState,
    create_feed_from_config,
    create_local_feed,
    create_organization_feed,
    create_organization_views_feed,
    create_remote_feed,
    feed_entry_names,
)
from feedpush.services.session import PublishSession
from feedpush.services.source_registry import SourceRegistry

REMOTE_URL = "https://feed.example.com/v3/index.json"
ORG_URL = "https://pkgs.dev.azure.com/my-org/_packaging/main/nuget/v3/index.json"


def candidates(*specs):
    artifacts = [ArtifactInstance.create(name, version) for name, version in specs]
    return {a.key: a for a in artifacts}


@pytest.fixture
def scenario(fake_http, write_package):
    """PkgA@1.0.0 already on every feed; PkgB@2.0.0-ci.3 is new."""
    fake_http.packages = {"pkga": ["1.0.0"]}
    write_package("PkgA", "1.0.0")
    write_package("PkgB", "2.0.0-ci.3")
    return candidates(("PkgA", "1.0.0"), ("PkgB", "2.0.0-ci.3"))


class TestComputePending:

    def test_existing_package_counted_not_pending(self, session, scenario):
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)

        pending, already = publisher.compute_pending(feed, scenario)

        assert list(pending) == ["PkgB/2.0.0-ci.3"]
        assert already == 1

    def test_concurrent_checks_keep_candidate_order(self, session, fake_http):
        session.config['publish']['max_concurrent_checks'] = 8
        fake_http.packages = {"p3": ["1.0.0"]}
        specs = [(f"P{i}", "1.0.0") for i in range(10)]
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")

        pending, already = FeedPublisher(session).compute_pending(feed, candidates(*specs))

        assert already == 1
        assert list(pending) == [f"P{i}/1.0.0" for i in range(10) if i != 3]

    def test_none_candidates_rejected(self, session):
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        with pytest.raises(InvalidArgumentError):
            FeedPublisher(session).compute_pending(feed, None)

    def test_initializes_session_once(self, session, scenario):
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.compute_pending(feed, scenario)
        publisher.compute_pending(feed, scenario)
        assert session.is_initialized
        assert ENDPOINTS_ENV_VAR in session.environ

    def test_existence_failure_propagates_with_feed(self, session, fake_http, scenario):
        fake_http.get = MagicMock(side_effect=TransportError("boom", feed_name="feed", url=REMOTE_URL))
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        with pytest.raises(TransportError) as exc_info:
            FeedPublisher(session).compute_pending(feed, scenario)
        assert REMOTE_URL in str(exc_info.value)


class TestInitialize:

    def test_transitions_to_pending_computed(self, session, scenario):
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        FeedPublisher(session).initialize(feed, scenario)
        assert feed.state == FeedState.PENDING_COMPUTED
        assert feed.already_published_count == 1

    def test_reinitialize_replaces_pending(self, session, scenario):
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)

        publisher.initialize(feed, candidates(("PkgC", "3.0.0")))

        assert list(feed.pending) == ["PkgC/3.0.0"]
        assert feed.already_published_count == 0

    def test_failed_reinitialize_keeps_previous_state(self, session, fake_http, scenario):
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)
        fake_http.get = MagicMock(side_effect=TransportError("down"))

        with pytest.raises(TransportError):
            publisher.initialize(feed, candidates(("PkgC", "3.0.0")))
        assert list(feed.pending) == ["PkgB/2.0.0-ci.3"]
        assert feed.already_published_count == 1

    def test_reinitialize_resets_promotion_count(self, session, scenario):
        feed = create_organization_views_feed(session, "my-org", "main")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)
        feed.promotions = 3

        publisher.initialize(feed, scenario)

        assert feed.promotions == 0

    def test_cannot_initialize_after_publish(self, session, environ, scenario, output_dir):
        environ["API_KEY"] = "k"
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)
        publisher.publish(feed, str(output_dir))
        with pytest.raises(FeedStateError):
            publisher.initialize(feed, scenario)


class TestPublish:

    def test_remote_push(self, session, environ, fake_http, scenario, output_dir):
        environ["API_KEY"] = "remote-key"
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)

        result = publisher.publish(feed, str(output_dir))

        puts = fake_http.calls_of('PUT')
        assert len(puts) == 1
        assert puts[0][1] == "https://feed.example.com/publish"
        assert puts[0][2]['file'] == "PkgB.2.0.0-ci.3.nupkg"
        assert puts[0][2]['headers']['X-NuGet-ApiKey'] == "remote-key"
        assert puts[0][2]['timeout'] == 20
        assert result.status == PublishStatus.SUCCESS
        assert result.pushed == ["PkgB/2.0.0-ci.3"]
        assert result.already_published == 1
        assert feed.state == FeedState.DONE

    def test_rerun_after_success_pushes_nothing(self, session, environ, fake_http, scenario, output_dir):
        environ["API_KEY"] = "remote-key"
        first = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(first, scenario)
        publisher.publish(first, str(output_dir))
        fake_http.packages["pkgb"] = ["2.0.0-ci.3"]
        fake_http.calls.clear()

        again = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher.initialize(again, scenario)
        result = publisher.publish(again, str(output_dir))

        assert fake_http.calls_of('PUT') == []
        assert again.already_published_count == 2
        assert result.pushed == []

    def test_missing_secret_skips_without_error(self, session, fake_http, scenario, output_dir):
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)

        result = publisher.publish(feed, str(output_dir))

        assert result.status == PublishStatus.SKIPPED
        assert "is skipped" in result.message
        assert fake_http.calls_of('PUT') == []
        assert feed.state == FeedState.DONE

    def test_publish_requires_initialize(self, session, output_dir):
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        with pytest.raises(FeedStateError):
            FeedPublisher(session).publish(feed, str(output_dir))

    def test_push_failure_is_fatal(self, session, environ, fake_http, scenario, output_dir):
        environ["API_KEY"] = "k"
        fake_http.push_status = 409
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)

        with pytest.raises(TransportError) as exc_info:
            publisher.publish(feed, str(output_dir))
        assert "FP-feed" in str(exc_info.value)
        assert feed.state == FeedState.PENDING_COMPUTED

    def test_missing_package_file_is_fatal(self, session, environ, output_dir):
        environ["API_KEY"] = "k"
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, candidates(("Ghost", "1.0.0")))
        with pytest.raises(TransportError):
            publisher.publish(feed, str(output_dir))

    def test_local_feed_needs_no_secret(self, session, tmp_path, scenario, output_dir):
        feed = create_local_feed(session, str(tmp_path / "feed"))
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)
        assert feed.already_published_count == 0

        result = publisher.publish(feed, str(output_dir))

        assert result.status == PublishStatus.SUCCESS
        assert sorted(result.pushed) == ["PkgA/1.0.0", "PkgB/2.0.0-ci.3"]
        assert (tmp_path / "feed" / "pkgb" / "2.0.0-ci.3" / "pkgb.2.0.0-ci.3.nupkg").is_file()

    def test_organization_feed_pushes_constant_key(self, session, environ, fake_http, scenario, output_dir):
        environ["ORG_PAT"] = "pat"
        feed = create_organization_feed(session, "org", ORG_URL, "ORG_PAT")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)
        publisher.publish(feed, str(output_dir))

        assert fake_http.calls_of('PUT')[0][2]['headers']['X-NuGet-ApiKey'] == "VSTS"
        assert fake_http.calls_of('POST') == []


class TestViewPromotion:

    def test_end_to_end_scenario(self, session, environ, fake_http, scenario, output_dir):
        environ["AZURE_FEED_MY_ORG_PAT"] = "pat"
        feed = create_organization_views_feed(session, "my-org", "main")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)

        assert list(feed.pending) == ["PkgB/2.0.0-ci.3"]
        assert feed.already_published_count == 1

        result = publisher.publish(feed, str(output_dir))

        posts = fake_http.calls_of('POST')
        assert len(posts) == 1
        assert posts[0][2]['json'] == {
            "data": {"viewId": "CI"},
            "operation": 0,
            "packages": [{"id": "PkgB", "version": "2.0.0-ci.3", "protocolType": "NuGet"}],
        }
        assert posts[0][1].startswith("https://pkgs.dev.azure.com/my-org/_apis/packaging/feeds/main/")
        assert result.promotions == 1
        assert feed.state == FeedState.DONE

    def test_promotions_after_all_pushes(self, session, environ, fake_http, write_package, output_dir):
        environ["AZURE_FEED_MY_ORG_PAT"] = "pat"
        write_package("PkgA", "1.0.0")
        write_package("PkgC", "1.1.0-beta.1")
        feed = create_organization_views_feed(session, "my-org", "main")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, candidates(("PkgA", "1.0.0"), ("PkgC", "1.1.0-beta.1")))
        fake_http.calls.clear()

        result = publisher.publish(feed, str(output_dir))

        methods = [m for m in fake_http.methods() if m in ('PUT', 'POST')]
        assert methods == ['PUT', 'PUT'] + ['POST'] * 6
        views = [c[2]['json']['data']['viewId'] for c in fake_http.calls_of('POST')]
        assert views == ["Stable", "Latest", "Preview", "CI", "Preview", "CI"]
        assert result.promotions == 6

    def test_no_promotion_when_skipped(self, session, fake_http, scenario, output_dir):
        feed = create_organization_views_feed(session, "my-org", "main")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)

        result = publisher.publish(feed, str(output_dir))

        assert result.status == PublishStatus.SKIPPED
        assert fake_http.calls_of('POST') == []

    def test_promotion_failure_is_fatal(self, session, environ, fake_http, scenario, output_dir):
        environ["AZURE_FEED_MY_ORG_PAT"] = "pat"
        fake_http.promote_status = 403
        feed = create_organization_views_feed(session, "my-org", "main")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)
        with pytest.raises(TransportError):
            publisher.publish(feed, str(output_dir))
        assert feed.state == FeedState.PUSHED


class TestFeedFactories:

    def test_views_feed_naming(self, session):
        feed = create_organization_views_feed(session, "my-org", "main")
        assert feed.name == "FP-my-org-main"
        assert feed.url == ORG_URL
        assert feed.secret_key_name == "AZURE_FEED_MY_ORG_PAT"
        assert feed.kind == FeedKind.ORGANIZATION_VIEWS
        assert session.organization_feeds == [feed]

    def test_views_feed_requires_identifiers(self, session):
        with pytest.raises(InvalidArgumentError):
            create_organization_views_feed(session, "", "main")

    def test_invalid_url_fails_before_network(self, session, fake_http):
        with pytest.raises(InvalidArgumentError):
            create_remote_feed(session, "x", "https://example.com/index", "KEY")
        assert fake_http.calls == []

    def test_capabilities_cover_every_kind(self):
        assert set(FEED_CAPABILITIES) == set(FeedKind)

    def test_from_config(self, session, tmp_path):
        local = create_feed_from_config(session, {"type": "local", "path": str(tmp_path)})
        remote = create_feed_from_config(session, {
            "type": "remote", "name": "nuget", "url": REMOTE_URL, "secret_key_name": "NUGET_API_KEY",
        })
        org = create_feed_from_config(session, {
            "type": "organization", "name": "org", "url": ORG_URL, "organization": "my-org",
        })
        views = create_feed_from_config(session, {
            "type": "organization-views", "organization": "other", "feed": "f",
        })
        assert local.kind == FeedKind.LOCAL
        assert remote.secret_key_name == "NUGET_API_KEY"
        assert org.secret_key_name == "AZURE_FEED_MY_ORG_PAT"
        assert views.kind == FeedKind.ORGANIZATION_VIEWS

    def test_from_config_unknown_type(self, session):
        with pytest.raises(ConfigError):
            create_feed_from_config(session, {"type": "npm"})

    def test_from_config_missing_field(self, session):
        with pytest.raises(ConfigError):
            create_feed_from_config(session, {"type": "remote", "name": "x"})


class TestRun:

    def test_run_mixes_skip_and_push(self, session, environ, fake_http, scenario, output_dir, tmp_path):
        environ["AZURE_FEED_MY_ORG_PAT"] = "pat"
        feeds = [
            create_remote_feed(session, "no-secret", REMOTE_URL, "MISSING_KEY"),
            create_organization_views_feed(session, "my-org", "main"),
            create_local_feed(session, str(tmp_path / "feed")),
        ]

        summary = FeedPublisher(session).run(feeds, scenario, str(output_dir))

        assert summary.success
        assert [d.status for d in summary.details] == [
            PublishStatus.SKIPPED, PublishStatus.SUCCESS, PublishStatus.SUCCESS,
        ]
        assert summary.skipped == 1
        payload = json.loads(environ[ENDPOINTS_ENV_VAR])
        assert len(payload["endpointCredentials"]) == 1

    def test_dry_run_pushes_nothing(self, session, environ, fake_http, scenario, output_dir):
        environ["API_KEY"] = "k"
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")

        summary = FeedPublisher(session).run([feed], scenario, str(output_dir), dry_run=True)

        assert summary.dry_run
        assert summary.details[0].status == PublishStatus.DRY_RUN
        assert summary.details[0].pushed == ["PkgB/2.0.0-ci.3"]
        assert fake_http.calls_of('PUT') == []

    def test_failure_aborts_by_default(self, session, environ, fake_http, scenario, output_dir):
        environ["API_KEY"] = "k"
        fake_http.push_status = 500
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        with pytest.raises(TransportError):
            FeedPublisher(session).run([feed], scenario, str(output_dir))

    def test_keep_going_records_failure(self, session, environ, fake_http, scenario, output_dir, tmp_path):
        environ["API_KEY"] = "k"
        fake_http.push_status = 500
        feeds = [
            create_remote_feed(session, "feed", REMOTE_URL, "API_KEY"),
            create_local_feed(session, str(tmp_path / "feed")),
        ]

        summary = FeedPublisher(session).run(feeds, scenario, str(output_dir), keep_going=True)

        assert not summary.success
        assert summary.failed == 1
        assert summary.details[1].status == PublishStatus.SUCCESS

    def test_parallel_feeds(self, session, environ, scenario, output_dir, tmp_path):
        feeds = [create_local_feed(session, str(tmp_path / f"feed{i}")) for i in range(3)]
        summary = FeedPublisher(session).run(feeds, scenario, str(output_dir), parallel=3)
        assert [d.feed_name for d in summary.details] == ["FP-feed0", "FP-feed1", "FP-feed2"]
        assert summary.pushed_count == 6


class TestEndpointCredentials:

    def test_organization_requests_carry_credential(self, session, environ, fake_http, scenario, output_dir):
        environ["AZURE_FEED_MY_ORG_PAT"] = "secret-pat"
        feed = create_organization_views_feed(session, "my-org", "main")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)
        publisher.publish(feed, str(output_dir))

        expected = HTTPBasicAuth("Unused", "secret-pat")
        gets = fake_http.calls_of('GET')
        flat_gets = [c for c in gets if '/flat/' in c[1]]
        puts = fake_http.calls_of('PUT')
        assert flat_gets and puts
        assert all(c[2]['auth'] == expected for c in gets)
        assert all(c[2]['auth'] == expected for c in puts)
        assert puts[0][2]['headers']['X-NuGet-ApiKey'] == "VSTS"

    def test_remote_feed_sends_no_credential(self, session, environ, fake_http, scenario, output_dir):
        environ["API_KEY"] = "k"
        feed = create_remote_feed(session, "feed", REMOTE_URL, "API_KEY")
        publisher = FeedPublisher(session)
        publisher.initialize(feed, scenario)
        publisher.publish(feed, str(output_dir))

        assert all(c[2]['auth'] is None for c in fake_http.calls if c[0] in ('GET', 'PUT'))

    def test_feed_created_after_export_has_no_credential(self, session, environ, fake_http, scenario):
        environ["AZURE_FEED_EARLY_PAT"] = "early"
        environ["AZURE_FEED_LATE_PAT"] = "late"
        publisher = FeedPublisher(session)
        publisher.initialize(create_organization_views_feed(session, "early", "main"), scenario)
        fake_http.calls.clear()

        publisher.initialize(create_organization_views_feed(session, "late", "main"), scenario)

        assert all(c[2]['auth'] is None for c in fake_http.calls_of('GET'))


class TestFeedEntryNames:

    def test_remote_entry(self, session):
        names = feed_entry_names(session, {"type": "remote", "name": "team", "url": REMOTE_URL})
        assert names == {"team", "FP-team"}

    def test_views_entry(self, session):
        names = feed_entry_names(session, {"type": "organization-views", "organization": "my-org", "feed": "main"})
        assert names == {"my-org-main", "FP-my-org-main"}

    def test_local_entry(self, session, tmp_path):
        assert "FP-drop" in feed_entry_names(session, {"type": "local", "path": str(tmp_path / "drop")})

    def test_registered_source_name(self, fake_http, environ):
        registry = SourceRegistry.from_entries([{"name": "nuget.org", "location": REMOTE_URL}])
        session = PublishSession(registry=registry, http=fake_http, environ=environ)
        names = feed_entry_names(session, {"type": "remote", "name": "nuget", "url": REMOTE_URL})
        assert "nuget.org" in names

    def test_does_not_register(self, session):
        feed_entry_names(session, {"type": "organization-views", "organization": "my-org", "feed": "main"})
        assert len(session.registry) == 0
        assert session.organization_feeds == []

    def test_incomplete_entry_has_no_names(self, session):
        assert feed_entry_names(session, {"type": "remote"}) == set()
