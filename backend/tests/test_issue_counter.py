import unittest

from scm_enricher.cache.persistable_cache import PersistableCache
from scm_enricher.entities import RepoCoordinates
from scm_enricher.services.github.exceptions import GithubRateLimitError, GithubTransientNetworkError
from scm_enricher.services.issue_counter import IssueCounter, build_issues_url, issue_cache_key
from tests.fakes import FakeClock, FakeGraphQLClient, MemorySnapshotStore

SCM_URL = "https://github.com/quarkusio/quarkus"
COORDS = RepoCoordinates(owner="quarkusio", name="quarkus")


def count_body(total):
    return {"data": {"repository": {"issues": {"totalCount": total}}}}


class TestIssueUrls(unittest.TestCase):
    def test_labels_are_percent_encoded_and_comma_joined(self):
        url = build_issues_url(SCM_URL, ["area/foo", "area/bar"])

        self.assertEqual(
            url,
            "https://github.com/quarkusio/quarkus/issues?q=is%3Aopen+is%3Aissue+label%3Aarea%2Ffoo,area%2Fbar",
        )

    def test_no_labels_links_to_all_issues(self):
        self.assertEqual(build_issues_url(SCM_URL, None), "https://github.com/quarkusio/quarkus/issues")
        self.assertEqual(build_issues_url(SCM_URL, []), "https://github.com/quarkusio/quarkus/issues")

    def test_labels_with_spaces_are_encoded(self):
        self.assertTrue(build_issues_url(SCM_URL, ["good first issue"]).endswith("label%3Agood%20first%20issue"))

    def test_cache_keys(self):
        self.assertEqual(issue_cache_key(COORDS, ["area/foo", "area/bar"]), '"area/foo","area/bar"')
        self.assertEqual(issue_cache_key(COORDS, None), "quarkusio-quarkus")


class TestIssueCounter(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.cache = PersistableCache("issues", 1000, MemorySnapshotStore(), clock=FakeClock())

    async def test_counts_open_issues_filtered_by_labels(self):
        client = FakeGraphQLClient(lambda document, variables: count_body(12))
        counter = IssueCounter(client, self.cache)

        info = await counter.get_issue_information(COORDS, ["area/kotlin"], SCM_URL)

        self.assertEqual(info.issue_count, 12)
        self.assertIn("label%3Aarea%2Fkotlin", info.issues_url)
        self.assertEqual(client.calls[0]["variables"]["labels"], ["area/kotlin"])
        self.assertIn("filterBy", client.calls[0]["document"])

    async def test_unfiltered_count_is_cached_per_repository(self):
        client = FakeGraphQLClient(lambda document, variables: count_body(3))
        counter = IssueCounter(client, self.cache)

        await counter.get_issue_information(COORDS, None, SCM_URL)
        info = await counter.get_issue_information(COORDS, None, SCM_URL)

        self.assertEqual(info.issue_count, 3)
        self.assertEqual(info.issues_url, f"{SCM_URL}/issues")
        self.assertEqual(len(client.calls), 1)
        self.assertNotIn("filterBy", client.calls[0]["document"])
        self.assertTrue(self.cache.has("quarkusio-quarkus"))

    async def test_rate_limit_keeps_url_and_drops_count(self):
        client = FakeGraphQLClient(lambda document, variables: GithubRateLimitError("limited"))
        counter = IssueCounter(client, self.cache)

        info = await counter.get_issue_information(COORDS, ["area/foo"], SCM_URL)

        self.assertIsNone(info.issue_count)
        self.assertIn("label%3Aarea%2Ffoo", info.issues_url)
        self.assertEqual(self.cache.size(), 0)

    async def test_malformed_response_is_not_cached(self):
        responses = [{"data": {"repository": None}}, count_body(7)]
        client = FakeGraphQLClient(lambda document, variables: responses.pop(0))
        counter = IssueCounter(client, self.cache)

        first = await counter.get_issue_information(COORDS, None, SCM_URL)
        second = await counter.get_issue_information(COORDS, None, SCM_URL)

        self.assertIsNone(first.issue_count)
        self.assertEqual(second.issue_count, 7)

    async def test_count_of_the_wrong_type_drops_count_and_is_not_cached(self):
        client = FakeGraphQLClient(lambda document, variables: count_body("lots"))
        counter = IssueCounter(client, self.cache)

        info = await counter.get_issue_information(COORDS, None, SCM_URL)

        self.assertIsNone(info.issue_count)
        self.assertEqual(info.issues_url, f"{SCM_URL}/issues")
        self.assertEqual(self.cache.size(), 0)

    async def test_unreachable_github_propagates(self):
        client = FakeGraphQLClient(lambda document, variables: GithubTransientNetworkError("down"))
        counter = IssueCounter(client, self.cache)

        with self.assertRaises(GithubTransientNetworkError):
            await counter.get_issue_information(COORDS, None, SCM_URL)


if __name__ == "__main__":
    unittest.main()
