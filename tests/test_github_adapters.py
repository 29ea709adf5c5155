"""
Tests for the GitHub-backed source adapters: LeviLamina and Endstone.
"""

import unittest
from unittest import mock

from modindex.core.exceptions import CancelledError, MalformedManifestError
from modindex.core.interfaces import FetcherConfig, RepositoryDescriptor
from modindex.fetcher.base import HttpClient
from modindex.fetcher.endstone_cpp import EndstoneCppAdapter, endstone_git_tag
from modindex.fetcher.endstone_python import (
    EndstonePythonAdapter,
    endstone_requirement,
    parse_pyproject,
)
from modindex.fetcher.levilamina import (
    LeviLaminaAdapter,
    clean_version,
    resolve_avatar_url,
)
from modindex.fetcher.pypi import PyPIClient
from tests.fixtures.sample_data import (
    SAMPLE_CMAKE_LISTS,
    SAMPLE_GITHUB_CONTRIBUTORS,
    SAMPLE_GITHUB_RELEASES,
    SAMPLE_GITHUB_REPOSITORY,
    SAMPLE_GOPROXY_INFO,
    SAMPLE_PYPI_PROJECT,
    SAMPLE_PYPI_RELEASE,
    SAMPLE_PYPROJECT,
    SAMPLE_TOOTH_V2,
    SAMPLE_TOOTH_V3,
    tooth_json,
)

TELEPORT = RepositoryDescriptor(owner="example", repo="teleport")


def fake_goproxy(infos):
    """A GoProxyClient double listing the versions in ``infos``."""
    goproxy = mock.Mock()
    goproxy.list_versions.return_value = list(infos)
    goproxy.get_version_info.side_effect = lambda owner, repo, version: infos.get(version)
    return goproxy


def fake_github(files):
    """A GitHubClient double serving ``files`` keyed by ``(ref, path)``."""
    github = mock.Mock()
    github.get_repository.return_value = SAMPLE_GITHUB_REPOSITORY
    github.list_contributors.return_value = SAMPLE_GITHUB_CONTRIBUTORS
    github.list_releases.return_value = SAMPLE_GITHUB_RELEASES
    github.fetch_raw_file.side_effect = lambda owner, repo, ref, path: files.get((ref, path))
    return github


class TestLeviLaminaHelpers(unittest.TestCase):

    def test_clean_version(self):
        self.assertEqual(clean_version("v1.2.3"), "1.2.3")
        self.assertEqual(clean_version("v2.0.0+incompatible"), "2.0.0")
        self.assertEqual(clean_version("1.0.0"), "1.0.0")

    def test_resolve_avatar_url(self):
        self.assertEqual(resolve_avatar_url("o", "r", ""), "https://avatars.githubusercontent.com/o")
        self.assertEqual(resolve_avatar_url("o", "r", "https://x.test/a.png"), "https://x.test/a.png")
        self.assertEqual(resolve_avatar_url("o", "r", "//cdn.test/a.png"), "//cdn.test/a.png")
        self.assertEqual(
            resolve_avatar_url("o", "r", "assets/icon.png"),
            "https://raw.githubusercontent.com/o/r/HEAD/assets/icon.png",
        )


class TestLeviLaminaAdapter(unittest.TestCase):
    """Test the LeviLaminaAdapter class."""

    def setUp(self):
        self.files = {
            ("HEAD", "tooth.json"): tooth_json(SAMPLE_TOOTH_V2),
            ("HEAD", "xmake.lua"): "target('teleport')",
            ("v1.3.0", "tooth.json"): tooth_json(SAMPLE_TOOTH_V3),
            ("v1.2.0", "tooth.json"): tooth_json(SAMPLE_TOOTH_V2),
        }
        self.github = fake_github(self.files)
        self.infos = dict(SAMPLE_GOPROXY_INFO)
        self.goproxy = fake_goproxy(self.infos)
        self.adapter = LeviLaminaAdapter(
            FetcherConfig(concurrent_requests=2),
            http=mock.Mock(spec=HttpClient),
            github=self.github,
            goproxy=self.goproxy,
        )

    def test_discover_skips_levilamina_and_duplicates(self):
        self.github.search_code.return_value = iter([
            TELEPORT,
            RepositoryDescriptor(owner="LiteLDev", repo="LeviLamina"),
            TELEPORT,
            RepositoryDescriptor(owner="other", repo="mod"),
        ])

        self.assertEqual(
            list(self.adapter.discover()),
            [TELEPORT, RepositoryDescriptor(owner="other", repo="mod")],
        )
        self.assertIn("tooth.json", self.github.search_code.call_args.args[0])

    def test_fetch_facts(self):
        raw = self.adapter.fetch_facts(TELEPORT)

        self.assertEqual(raw.key, "github:example/teleport")
        self.assertEqual(raw.name, "Teleport")
        self.assertEqual(raw.author, "example")
        self.assertEqual(raw.package_manager, "lip")
        self.assertEqual(raw.hotness, 42)
        self.assertEqual(raw.project_url, "https://github.com/example/teleport")
        self.assertEqual(raw.avatar_url, "https://raw.githubusercontent.com/example/teleport/HEAD/assets/icon.png")
        self.assertEqual(
            raw.tags,
            ["platform:levilamina", "type:mod", "utility", "levilamina", "minecraft", "bedrock"],
        )

        versions = {v.version: v for v in raw.versions}
        self.assertEqual(set(versions), {"1.3.0", "1.2.0"})
        self.assertEqual(versions["1.3.0"].platform_version_requirement, ">=1.1.0")
        self.assertEqual(versions["1.2.0"].platform_version_requirement, "1.0.x")
        self.assertEqual(versions["1.2.0"].released_at, "2024-01-15T08:30:00Z")

    def test_without_xmake_is_not_tagged_as_mod(self):
        del self.files[("HEAD", "xmake.lua")]

        self.assertNotIn("type:mod", self.adapter.fetch_facts(TELEPORT).tags)

    def test_missing_manifest_at_head(self):
        del self.files[("HEAD", "tooth.json")]

        self.assertIsNone(self.adapter.fetch_facts(TELEPORT))

    def test_versions_come_from_module_proxy_tags(self):
        self.github.list_releases.return_value = []

        raw = self.adapter.fetch_facts(TELEPORT)

        self.assertEqual({v.version for v in raw.versions}, {"1.3.0", "1.2.0"})
        self.goproxy.list_versions.assert_called_once_with("example", "teleport")
        self.github.list_releases.assert_not_called()

    def test_tag_without_manifest_has_no_requirement(self):
        del self.files[("v1.2.0", "tooth.json")]

        versions = {v.version: v for v in self.adapter.fetch_facts(TELEPORT).versions}

        self.assertEqual(set(versions), {"1.3.0", "1.2.0"})
        self.assertEqual(versions["1.2.0"].platform_version_requirement, "")
        self.assertEqual(versions["1.3.0"].platform_version_requirement, ">=1.1.0")

    def test_tag_without_version_info_is_skipped(self):
        self.goproxy.list_versions.return_value = ["v1.3.0", "v1.2.0", "v9.9.9"]

        with self.assertLogs("modindex.fetcher.base", level="WARNING"):
            raw = self.adapter.fetch_facts(TELEPORT)

        self.assertEqual({v.version for v in raw.versions}, {"1.3.0", "1.2.0"})

    def test_incompatible_tag(self):
        self.infos.clear()
        self.infos["v2.0.0+incompatible"] = {"Version": "v2.0.0+incompatible", "Time": "2024-05-01T00:00:00Z"}
        self.files[("v2.0.0", "tooth.json")] = tooth_json(SAMPLE_TOOTH_V3)
        self.goproxy.list_versions.return_value = list(self.infos)

        versions = self.adapter.fetch_facts(TELEPORT).versions

        self.assertEqual([v.version for v in versions], ["2.0.0"])
        self.assertEqual(versions[0].platform_version_requirement, ">=1.1.0")

    def test_no_resolvable_versions(self):
        self.goproxy.list_versions.return_value = []

        self.assertIsNone(self.adapter.fetch_facts(TELEPORT))

    def test_malformed_head_manifest(self):
        self.files[("HEAD", "tooth.json")] = '{"format_version": 2, "info": {}}'

        with self.assertRaises(MalformedManifestError):
            self.adapter.fetch_facts(TELEPORT)

    def test_cancelled(self):
        self.adapter.cancel_event.set()

        with self.assertRaises(CancelledError):
            self.adapter.fetch_facts(TELEPORT)


class TestEndstoneCpp(unittest.TestCase):
    """Test the EndstoneCppAdapter class."""

    def setUp(self):
        self.files = {("v1.3.0", "CMakeLists.txt"): SAMPLE_CMAKE_LISTS}
        self.github = fake_github(self.files)
        self.adapter = EndstoneCppAdapter(http=mock.Mock(spec=HttpClient), github=self.github)

    def test_endstone_git_tag(self):
        self.assertEqual(endstone_git_tag(SAMPLE_CMAKE_LISTS), "v0.5.2")
        self.assertEqual(endstone_git_tag("project(x)"), "")

    def test_fetch_facts(self):
        raw = self.adapter.fetch_facts(TELEPORT)

        self.assertEqual(raw.name, "teleport")
        self.assertEqual(raw.description, "Teleport between homes")
        self.assertEqual(raw.tags, ["platform:endstone", "type:mod", "minecraft", "bedrock"])
        self.assertEqual(raw.avatar_url, "https://avatars.githubusercontent.com/example")
        self.assertEqual(raw.package_manager, "")

        # v1.2.0 has no CMakeLists.txt at its tag
        self.assertEqual(len(raw.versions), 1)
        version = raw.versions[0]
        self.assertEqual(version.version, "v1.3.0")
        self.assertEqual(version.platform_version_requirement, "v0.5.2")
        self.assertEqual(version.released_at, "2024-03-01T12:00:00Z")

    def test_no_versions(self):
        self.files.clear()

        self.assertIsNone(self.adapter.fetch_facts(TELEPORT))

    def test_discover(self):
        self.github.search_code.return_value = iter([TELEPORT, TELEPORT])

        self.assertEqual(list(self.adapter.discover()), [TELEPORT])
        self.assertIn("endstone_add_plugin", self.github.search_code.call_args.args[0])


class TestEndstonePythonHelpers(unittest.TestCase):

    def test_parse_pyproject(self):
        project = parse_pyproject(SAMPLE_PYPROJECT)

        self.assertEqual(project["name"], "endstone-example")
        self.assertEqual(project["keywords"], ["economy", "plugin"])

    def test_parse_pyproject_errors(self):
        with self.assertRaises(MalformedManifestError):
            parse_pyproject("[project\nname=")
        with self.assertRaises(MalformedManifestError):
            parse_pyproject("[tool.black]\nline-length = 100\n")

    def test_endstone_requirement(self):
        self.assertEqual(endstone_requirement(["endstone-essentials>=1.0", "endstone>=0.5"]), ">=0.5")
        self.assertEqual(endstone_requirement(["endstone >= 0.5, <0.6"]), ">= 0.5, <0.6")
        self.assertEqual(endstone_requirement(["endstone"]), "")
        self.assertEqual(endstone_requirement(["endstone_tools==1", "requests"]), "")
        self.assertEqual(endstone_requirement([]), "")


class TestEndstonePythonAdapter(unittest.TestCase):
    """Test the EndstonePythonAdapter class."""

    def setUp(self):
        self.files = {
            ("HEAD", "pyproject.toml"): SAMPLE_PYPROJECT,
            ("v1.3.0", "pyproject.toml"): SAMPLE_PYPROJECT,
            ("v1.2.0", "pyproject.toml"): SAMPLE_PYPROJECT.replace("endstone>=0.5", "endstone>=0.4"),
        }
        self.github = fake_github(self.files)
        self.pypi = mock.Mock(spec=PyPIClient)
        self.pypi.get_project.return_value = SAMPLE_PYPI_PROJECT
        self.pypi.get_release.side_effect = lambda name, version: (
            SAMPLE_PYPI_RELEASE if version == "0.2.0" else {"info": {}, "urls": []}
        )
        self.adapter = EndstonePythonAdapter(
            http=mock.Mock(spec=HttpClient), github=self.github, pypi=self.pypi
        )

    def test_fetch_facts(self):
        raw = self.adapter.fetch_facts(TELEPORT)

        self.assertEqual(raw.name, "endstone-example")
        self.assertEqual(raw.description, "An example Endstone plugin")
        self.assertEqual(raw.package_manager, "pip")
        self.assertEqual(
            raw.tags,
            ["platform:endstone", "type:mod", "economy", "plugin", "minecraft", "bedrock"],
        )

        versions = {(v.source, v.version): v for v in raw.versions}
        self.assertEqual(
            set(versions),
            {("github", "v1.3.0"), ("github", "v1.2.0"), ("pypi", "0.2.0")},
        )
        self.assertEqual(versions[("github", "v1.2.0")].platform_version_requirement, ">=0.4")
        self.assertEqual(versions[("pypi", "0.2.0")].platform_version_requirement, ">=0.5")
        self.assertEqual(versions[("pypi", "0.2.0")].released_at, "2024-02-20T09:30:00.000000Z")

        self.pypi.get_project.assert_called_once_with("endstone-example")

    def test_not_on_pypi(self):
        self.pypi.get_project.return_value = None

        raw = self.adapter.fetch_facts(TELEPORT)
        self.assertEqual({v.source for v in raw.versions}, {"github"})

    def test_missing_pyproject_at_head(self):
        del self.files[("HEAD", "pyproject.toml")]

        self.assertIsNone(self.adapter.fetch_facts(TELEPORT))

    def test_pypi_only_versions(self):
        self.github.list_releases.return_value = []

        raw = self.adapter.fetch_facts(TELEPORT)
        self.assertEqual([v.version for v in raw.versions], ["0.2.0"])


if __name__ == "__main__":
    unittest.main()
