"""
Tests for the GitHub REST API client.
"""

import threading
import unittest
from unittest import mock

from modindex.core.exceptions import DiscoveryError, FetchError
from modindex.core.interfaces import FetcherConfig, RepositoryDescriptor
from modindex.fetcher.base import HttpClient
from modindex.fetcher.github import (
    GitHubClient,
    contributors_from,
    default_avatar_url,
    raw_url,
    release_timestamp,
)
from tests.fixtures.doubles import MockResponse
from tests.fixtures.sample_data import (
    SAMPLE_CODE_SEARCH_PAGE,
    SAMPLE_GITHUB_CONTRIBUTORS,
    SAMPLE_GITHUB_RELEASES,
)


def routed(responses):
    """side_effect for Session.get answering by URL; unknown URLs are 404s."""

    def get(url, headers=None, timeout=None):
        return responses.get(url, MockResponse(status_code=404))

    return get


class TestGitHubClient(unittest.TestCase):
    """Test the GitHubClient class."""

    def setUp(self):
        self.http = HttpClient(FetcherConfig(retry_count=1))
        self.client = GitHubClient(self.http, token="secret")

    def tearDown(self):
        self.http.close()

    def test_headers(self):
        self.assertEqual(self.client.headers["Authorization"], "Bearer secret")
        self.assertEqual(self.client.headers["Accept"], "application/vnd.github+json")
        self.assertNotIn("Authorization", GitHubClient(self.http).headers)

    @mock.patch("requests.Session.get")
    def test_search_code_follows_next_links(self, mock_get):
        first = "https://api.github.com/search/code?q=filename:tooth.json+LeviLamina&per_page=100"
        second = "https://api.github.com/search/code?q=filename:tooth.json+LeviLamina&per_page=100&page=2"
        mock_get.side_effect = routed({
            first: MockResponse(json_data=SAMPLE_CODE_SEARCH_PAGE, links={"next": {"url": second}}),
            second: MockResponse(json_data={"items": [
                {"repository": {"name": "other", "owner": {"login": "someone"}}},
                {"repository": {"name": "broken"}},
            ]}),
        })

        descriptors = list(self.client.search_code("filename:tooth.json+LeviLamina"))

        self.assertEqual(descriptors, [
            RepositoryDescriptor(owner="example", repo="teleport"),
            RepositoryDescriptor(owner="LiteLDev", repo="LeviLamina"),
            RepositoryDescriptor(owner="example", repo="teleport"),
            RepositoryDescriptor(owner="someone", repo="other"),
        ])
        self.assertEqual(mock_get.call_args_list[0].args[0], first)
        self.assertEqual(mock_get.call_args_list[0].kwargs["headers"]["Authorization"], "Bearer secret")

    @mock.patch("requests.Session.get")
    def test_search_code_is_lazy(self, mock_get):
        mock_get.return_value = MockResponse(json_data=SAMPLE_CODE_SEARCH_PAGE)

        results = self.client.search_code("anything")
        mock_get.assert_not_called()

        next(results)
        self.assertEqual(mock_get.call_count, 1)

    @mock.patch("requests.Session.get")
    def test_search_code_failure(self, mock_get):
        mock_get.return_value = MockResponse(status_code=403)

        with self.assertRaises(DiscoveryError):
            list(self.client.search_code("anything"))

    @mock.patch("requests.Session.get")
    def test_search_code_invalid_json(self, mock_get):
        mock_get.return_value = MockResponse(text="<html>rate limited</html>")

        with self.assertRaises(DiscoveryError):
            list(self.client.search_code("anything"))

    @mock.patch("requests.Session.get")
    def test_search_code_stops_when_cancelled(self, mock_get):
        event = threading.Event()
        event.set()

        self.assertEqual(list(self.client.search_code("anything", cancel_event=event)), [])
        mock_get.assert_not_called()

    @mock.patch("requests.Session.get")
    def test_list_releases_paginates(self, mock_get):
        base = "https://api.github.com/repos/example/teleport/releases?per_page=100"
        mock_get.side_effect = routed({
            base: MockResponse(json_data=SAMPLE_GITHUB_RELEASES[:1], links={"next": {"url": base + "&page=2"}}),
            base + "&page=2": MockResponse(json_data=SAMPLE_GITHUB_RELEASES[1:]),
        })

        self.assertEqual(self.client.list_releases("example", "teleport"), SAMPLE_GITHUB_RELEASES)

    @mock.patch("requests.Session.get")
    def test_list_contributors_of_empty_repository(self, mock_get):
        mock_get.return_value = MockResponse(status_code=204)

        self.assertEqual(self.client.list_contributors("example", "empty"), [])

    @mock.patch("requests.Session.get")
    def test_get_repository_failure(self, mock_get):
        mock_get.return_value = MockResponse(status_code=404)

        with self.assertRaises(FetchError):
            self.client.get_repository("example", "gone")

    @mock.patch("requests.Session.get")
    def test_fetch_raw_file(self, mock_get):
        url = "https://raw.githubusercontent.com/example/teleport/v1.0.0/tooth.json"
        mock_get.side_effect = routed({url: MockResponse(text="{}")})

        self.assertEqual(self.client.fetch_raw_file("example", "teleport", "v1.0.0", "tooth.json"), "{}")
        self.assertIsNone(self.client.fetch_raw_file("example", "teleport", "v1.0.0", "missing.json"))


class TestGitHubHelpers(unittest.TestCase):

    def test_raw_url(self):
        self.assertEqual(
            raw_url("o", "r", "HEAD", "/assets/icon.png"),
            "https://raw.githubusercontent.com/o/r/HEAD/assets/icon.png",
        )

    def test_default_avatar_url(self):
        self.assertEqual(default_avatar_url("octo"), "https://avatars.githubusercontent.com/octo")

    def test_contributors_from(self):
        contributors = contributors_from(SAMPLE_GITHUB_CONTRIBUTORS)

        self.assertEqual([c.username for c in contributors], ["alice", "bob", ""])
        self.assertEqual(contributors[2].contributions, 1)

    def test_release_timestamp(self):
        self.assertEqual(release_timestamp(SAMPLE_GITHUB_RELEASES[0]), "2024-03-01T12:00:00Z")
        self.assertEqual(release_timestamp(SAMPLE_GITHUB_RELEASES[1]), "2024-01-15T08:30:00Z")
        self.assertEqual(release_timestamp({}), "")


if __name__ == "__main__":
    unittest.main()
