import unittest

from scm_enricher.cache.persistable_cache import PersistableCache
from scm_enricher.entities import MetadataLocation, RepoCoordinates
from scm_enricher.services.github.exceptions import GithubRateLimitError, GithubResponseError
from scm_enricher.services.metadata_path_resolver import (
    MetadataPathResolver,
    build_metadata_path_query,
    candidate_expressions,
)
from tests.fakes import FakeClock, FakeGraphQLClient, MemorySnapshotStore

SCM_URL = "https://github.com/quarkiverse/quarkus-openfga-client"
COORDS = RepoCoordinates(owner="quarkiverse", name="quarkus-openfga-client")
DESCRIPTOR = "runtime/src/main/resources/META-INF/quarkus-extension.yaml"


def tree(*paths):
    return {"entries": [{"path": path} for path in paths]}


def repository_body(default_branch="main", **listings):
    repository = {"defaultBranchRef": {"name": default_branch} if default_branch else None}
    repository.update(listings)
    return {"data": {"repository": repository}}


class TestCandidateExpressions(unittest.TestCase):
    def test_order_and_shortened_artifact_id(self):
        candidates = candidate_expressions("quarkus-openfga-client", "quarkus-openfga-client-extra")
        expressions = [expression for _, expression in candidates]

        self.assertEqual(
            expressions,
            [
                "HEAD:runtime/src/main/resources/META-INF/",
                "HEAD:quarkus-openfga-client-extra/runtime/src/main/resources/META-INF/",
                "HEAD:extra/runtime/src/main/resources/META-INF/",
                "HEAD:extensions/extra/runtime/src/main/resources/META-INF/",
                "HEAD:extensions-core/extra/runtime/src/main/resources/META-INF/",
                "HEAD:extensions-jvm/extra/runtime/src/main/resources/META-INF/",
                "HEAD:extensions-support/extra/runtime/src/main/resources/META-INF/",
            ],
        )

    def test_query_declares_every_alias_as_variable(self):
        candidates = candidate_expressions("camel-quarkus", "camel-quarkus-foo")
        document = build_metadata_path_query(candidates)

        for alias, _ in candidates:
            self.assertIn(f"${alias}: String!", document)
            self.assertIn(f"{alias}: object(expression: ${alias})", document)
        self.assertIn("defaultBranchRef", document)


class TestMetadataPathResolver(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.cache = PersistableCache("paths", 1000, MemorySnapshotStore(), clock=FakeClock())

    def _resolver(self, body):
        self.client = FakeGraphQLClient(lambda document, variables: body)
        return MetadataPathResolver(self.client, self.cache)

    async def test_single_descriptor_at_repository_root(self):
        resolver = self._resolver(
            repository_body(
                metaInfs=tree("runtime/src/main/resources/META-INF/beans.xml", DESCRIPTOR),
            )
        )

        location = await resolver.get_metadata_location(COORDS, "io.quarkiverse.openfga", "quarkus-openfga-client", SCM_URL)

        self.assertEqual(
            location,
            MetadataLocation(
                extension_yaml_url=f"{SCM_URL}/blob/main/{DESCRIPTOR}",
                extension_path_in_repo="",
                extension_root_url=f"{SCM_URL}/blob/main/",
            ),
        )

    async def test_single_descriptor_in_extensions_subfolder(self):
        path = f"extensions/jackson/{DESCRIPTOR}"
        resolver = self._resolver(repository_body(default_branch="develop", quarkusSubfolderMetaInfs=tree(path)))

        location = await resolver.get_metadata_location(
            RepoCoordinates(owner="quarkusio", name="quarkus"), "io.quarkus", "quarkus-jackson", "https://github.com/quarkusio/quarkus"
        )

        self.assertEqual(location.extension_path_in_repo, "extensions/jackson/")
        self.assertEqual(location.extension_yaml_url, f"https://github.com/quarkusio/quarkus/blob/develop/{path}")
        self.assertEqual(location.extension_root_url, "https://github.com/quarkusio/quarkus/blob/develop/extensions/jackson/")

    async def test_multiple_descriptors_are_ambiguous(self):
        resolver = self._resolver(
            repository_body(
                metaInfs=tree(DESCRIPTOR),
                quarkusSubfolderMetaInfs=tree(f"extensions/openfga-client/{DESCRIPTOR}"),
            )
        )

        location = await resolver.get_metadata_location(COORDS, "io.quarkiverse.openfga", "quarkus-openfga-client", SCM_URL)

        self.assertIsNone(location)

    async def test_no_descriptor_is_absent_and_cached(self):
        resolver = self._resolver(repository_body(metaInfs=tree("runtime/src/main/resources/META-INF/beans.xml")))

        self.assertIsNone(await resolver.get_metadata_location(COORDS, "g", "quarkus-openfga-client", SCM_URL))
        self.assertIsNone(await resolver.get_metadata_location(COORDS, "g", "quarkus-openfga-client", SCM_URL))

        self.assertEqual(len(self.client.calls), 1)
        self.assertTrue(self.cache.has("g:quarkus-openfga-client"))

    async def test_same_file_through_two_candidates_is_ambiguous(self):
        path = f"widget/{DESCRIPTOR}"
        resolver = self._resolver(
            repository_body(subfolderMetaInfs=tree(path), shortenedSubfolderMetaInfs=tree(path))
        )

        location = await resolver.get_metadata_location(
            RepoCoordinates(owner="acme", name="tools"), "com.acme", "widget", "https://github.com/acme/tools"
        )

        self.assertIsNone(location)
        self.assertTrue(self.cache.has("com.acme:widget"))

    async def test_malformed_listing_raises_and_is_not_cached(self):
        resolver = self._resolver(repository_body(metaInfs={"entries": "not-a-list"}))

        with self.assertRaises(GithubResponseError):
            await resolver.get_metadata_location(COORDS, "g", "a", SCM_URL)
        self.assertFalse(self.cache.has("g:a"))

    async def test_result_is_cached_per_group_and_artifact(self):
        resolver = self._resolver(repository_body(metaInfs=tree(DESCRIPTOR)))

        await resolver.get_metadata_location(COORDS, "io.quarkiverse.openfga", "quarkus-openfga-client", SCM_URL)
        await resolver.get_metadata_location(COORDS, "io.quarkiverse.openfga", "quarkus-openfga-client", SCM_URL)

        self.assertEqual(len(self.client.calls), 1)
        self.assertTrue(self.cache.has("io.quarkiverse.openfga:quarkus-openfga-client"))

    async def test_missing_repository_raises_and_is_not_cached(self):
        resolver = self._resolver({"data": None, "errors": [{"message": "Something went wrong"}]})

        with self.assertRaises(GithubResponseError):
            await resolver.get_metadata_location(COORDS, "g", "a", SCM_URL)
        self.assertFalse(self.cache.has("g:a"))

    async def test_rate_limit_propagates_and_is_not_cached(self):
        client = FakeGraphQLClient(lambda document, variables: GithubRateLimitError("slow down"))
        resolver = MetadataPathResolver(client, self.cache)

        with self.assertRaises(GithubRateLimitError):
            await resolver.get_metadata_location(COORDS, "g", "a", SCM_URL)
        self.assertEqual(self.cache.size(), 0)

    async def test_missing_artifact_id_skips_lookup(self):
        resolver = self._resolver(repository_body())

        self.assertIsNone(await resolver.get_metadata_location(COORDS, "g", None, SCM_URL))
        self.assertEqual(self.client.calls, [])


if __name__ == "__main__":
    unittest.main()
