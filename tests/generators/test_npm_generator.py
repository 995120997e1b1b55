import os
import json
import shutil
import tempfile
import unittest

from bomgraph.core.errors import ConfigurationError, ManifestMalformedError, ManifestNotFoundError
from bomgraph.core.options import Options
from bomgraph.generators.npm import NpmGenerator, _nest_packages

TESTDATA = os.path.join(os.path.dirname(__file__), "testdata", "npm")


class TestNpmGenerator(unittest.TestCase):

    def setUp(self):
        self.generator = NpmGenerator()
        self.generator.configure(Options())

    def by_purl(self, components):
        return {c.purl: c for c in components}

    def test_generate_bom_testpackage(self):
        self.generator.configure(Options(recurse=True))

        bom = self.generator.generate_bom(os.path.join(TESTDATA, "testpackage"))

        purls = sorted(c.purl for c in bom.components)
        self.assertEqual(purls, [
            "pkg:npm/js-tokens@4.0.0",
            "pkg:npm/loose-envify@1.4.0",
            "pkg:npm/object-assign@4.1.1",
            "pkg:npm/react@17.0.1",
            "pkg:npm/testpackage@1.0.0",
        ])
        for component in bom.components:
            self.assertEqual(component.type, "library")

    def test_provenance_descriptions(self):
        components = self.by_purl(self.generator.generate_components(os.path.join(TESTDATA, "testpackage")))

        self.assertEqual(components["pkg:npm/testpackage@1.0.0"].description, "npm project root\n")
        self.assertEqual(
            components["pkg:npm/react@17.0.1"].description,
            "npm package\n\nRequired by:\n\ttestpackage@1.0.0",
        )
        self.assertEqual(
            components["pkg:npm/js-tokens@4.0.0"].description,
            "npm package\n\nRequired by:\n\tloose-envify@1.4.0\n\treact@17.0.1\n\ttestpackage@1.0.0",
        )

    def test_nested_copy_shadows_outer_copy(self):
        nodes = self.generator.build_graph(os.path.join(TESTDATA, "nested"))
        root = nodes[0]
        app_lib = root.installed["app-lib"]
        inner = app_lib.installed["left-pad"]
        outer = root.installed["left-pad"]
        helper = app_lib.installed["helper"]

        self.assertEqual(inner.version, "2.0.0")
        self.assertEqual(outer.version, "1.3.0")
        self.assertIn(helper, inner.dependants)
        self.assertIn(app_lib, inner.dependants)
        self.assertNotIn(helper, outer.dependants)
        self.assertNotIn(app_lib, outer.dependants)
        self.assertEqual([d.name for d in outer.dependants], ["util"])

    def test_unresolved_requirement_is_dropped(self):
        nodes = self.generator.build_graph(os.path.join(TESTDATA, "nested"))

        self.assertNotIn("optional-native", [n.name for n in nodes])
        app_lib = nodes[0].installed["app-lib"]
        self.assertIn("optional-native", app_lib.requires)

    def test_scoped_package_name(self):
        components = self.generator.generate_components(os.path.join(TESTDATA, "nested"))
        util = [c for c in components if c.name == "util"][0]

        self.assertEqual(util.group, "@scope")
        self.assertEqual(util.purl, "pkg:npm/%40scope/util@3.1.0")

    def test_dev_dependencies_excluded_by_default(self):
        components = self.generator.generate_components(os.path.join(TESTDATA, "nested"))
        names = [c.name for c in components]

        self.assertNotIn("test-runner", names)
        self.assertNotIn("assertions", names)
        self.assertEqual(len(components), 6)

    def test_dev_dependencies_included_on_request(self):
        self.generator.configure(Options(include_tests=True))
        components = self.by_purl(self.generator.generate_components(os.path.join(TESTDATA, "nested")))

        self.assertIn("pkg:npm/test-runner@5.0.0", components)
        self.assertIn("pkg:npm/assertions@1.0.0", components)
        self.assertIn("test-runner@5.0.0", components["pkg:npm/assertions@1.0.0"].description)

    def test_dev_dependencies_property_and_release_filter(self):
        self.generator.configure(Options(properties={"NpmDevDependencies": "true"}))
        self.assertTrue(self.generator.include_dev)

        self.generator.configure(Options(include_tests=True, filters=["release"]))
        self.assertFalse(self.generator.include_dev)

        self.generator.configure(Options(include_tests=True, filters=["release", "test"]))
        self.assertTrue(self.generator.include_dev)

    def test_bad_boolean_property(self):
        with self.assertRaises(ConfigurationError):
            self.generator.configure(Options(properties={"NpmDevDependencies": "yes"}))

    def test_bad_exclude_property(self):
        with self.assertRaises(ConfigurationError):
            self.generator.configure(Options(properties={"NpmExcludes": "(unclosed"}))

    def test_subcomponents(self):
        self.generator.configure(Options(include_subcomponents=True))
        components = self.generator.generate_components(os.path.join(TESTDATA, "nested"))
        app_lib = [c for c in components if c.name == "app-lib"][0]

        self.assertEqual(sorted(c.name for c in app_lib.components), ["helper", "left-pad"])

        self.generator.configure(Options())
        components = self.generator.generate_components(os.path.join(TESTDATA, "nested"))
        self.assertTrue(all(not c.components for c in components))

    def test_lockfile_v3_packages(self):
        nodes = self.generator.build_graph(os.path.join(TESTDATA, "lockfile-v3"))
        purls = sorted(n.purl for n in nodes)

        self.assertEqual(purls, [
            "pkg:npm/js-tokens@3.0.2",
            "pkg:npm/js-tokens@4.0.0",
            "pkg:npm/loose-envify@1.4.0",
            "pkg:npm/modern@0.3.0",
            "pkg:npm/react@17.0.1",
        ])
        root = nodes[0]
        loose_envify = root.installed["loose-envify"]
        self.assertEqual(loose_envify.installed["js-tokens"].dependants, [loose_envify])
        self.assertEqual(root.installed["js-tokens"].dependants, [])
        self.assertEqual(root.installed["react"].dependants, [root])

    def test_nest_packages(self):
        tree = _nest_packages({
            "": {"name": "x"},
            "node_modules/a": {"version": "1.0.0", "dependencies": {"b": "^1"}},
            "node_modules/a/node_modules/b": {"version": "1.1.0", "dev": True},
            "packages/workspace": {"version": "0.0.1"},
        })

        self.assertEqual(list(tree), ["a"])
        self.assertEqual(tree["a"]["version"], "1.0.0")
        self.assertEqual(tree["a"]["requires"], {"b": "^1"})
        self.assertTrue(tree["a"]["dependencies"]["b"]["dev"])

    def test_idempotent(self):
        path = os.path.join(TESTDATA, "nested")
        first = [(c.purl, c.description) for c in self.generator.generate_components(path)]
        second = [(c.purl, c.description) for c in self.generator.generate_components(path)]

        self.assertEqual(first, second)


class TestNpmLockfileReading(unittest.TestCase):

    def setUp(self):
        self.generator = NpmGenerator()
        self.generator.configure(Options())
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def write(self, relpath, content):
        path = os.path.join(self.tmp, relpath)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content if isinstance(content, str) else json.dumps(content))
        return path

    def test_missing_lockfile(self):
        with self.assertRaises(ManifestNotFoundError):
            self.generator.build_graph(self.tmp)

    def test_shrinkwrap_fallback_and_defaults(self):
        self.write("npm-shrinkwrap.json", {"dependencies": {"a": {"version": "1.0.0"}}})

        nodes = self.generator.build_graph(self.tmp)

        self.assertEqual(nodes[0].version, "unknown")
        self.assertEqual(nodes[0].name, os.path.basename(self.tmp))
        self.assertEqual(nodes[1].purl, "pkg:npm/a@1.0.0")

    def test_malformed_lockfile(self):
        self.write("package-lock.json", "{ not json")

        with self.assertRaises(ManifestMalformedError):
            self.generator.build_graph(self.tmp)

    def test_unreadable_package_json_is_not_fatal(self):
        self.write("package-lock.json", {"name": "p", "version": "1.0.0", "dependencies": {}})
        self.write("package.json", "{ broken")

        nodes = self.generator.build_graph(self.tmp)

        self.assertEqual(len(nodes), 1)
        self.assertEqual(nodes[0].requires, [])

    def test_recursive_skips_node_modules_and_excludes(self):
        lock = {"name": "p", "version": "1.0.0", "dependencies": {}}
        self.write("package-lock.json", lock)
        self.write("web/package-lock.json", dict(lock, name="web"))
        self.write("web/node_modules/dep/package-lock.json", dict(lock, name="vendored"))
        self.write("legacy/package-lock.json", dict(lock, name="legacy"))
        self.write("broken/package-lock.json", "{ nope")

        self.generator.configure(Options(recurse=True, properties={"NpmExcludes": "legacy$"}))
        bom = self.generator.generate_bom(self.tmp)

        self.assertEqual(sorted(c.name for c in bom.components), ["p", "web"])

    def test_recursive_keeps_duplicates_across_directories(self):
        lock = {"name": "p", "version": "1.0.0", "dependencies": {"a": {"version": "1.0.0"}}}
        self.write("one/package-lock.json", lock)
        self.write("two/package-lock.json", lock)

        self.generator.configure(Options(recurse=True))
        bom = self.generator.generate_bom(self.tmp)

        self.assertEqual([c.purl for c in bom.components].count("pkg:npm/a@1.0.0"), 2)

    def test_recursive_on_missing_path(self):
        self.generator.configure(Options(recurse=True))

        with self.assertRaises(ManifestNotFoundError):
            self.generator.generate_bom(os.path.join(self.tmp, "nope"))

    def test_packages_must_be_an_object(self):
        self.write("package-lock.json", {"name": "p", "packages": []})

        with self.assertRaises(ManifestMalformedError):
            self.generator.build_graph(self.tmp)

    def test_name_must_be_a_string(self):
        self.write("package-lock.json", {"name": 5, "dependencies": {}})

        with self.assertRaises(ManifestMalformedError):
            self.generator.build_graph(self.tmp)

    def test_bad_nested_requirements(self):
        self.write("package-lock.json", {"packages": {"node_modules/a": {"version": "1.0.0", "dependencies": ["b"]}}})

        with self.assertRaises(ManifestMalformedError):
            self.generator.build_graph(self.tmp)

    def test_recursive_skips_badly_shaped_lockfile(self):
        self.write("bad/package-lock.json", {"packages": []})
        self.write("good/package-lock.json", {"name": "good", "version": "1.0.0", "dependencies": {}})

        self.generator.configure(Options(recurse=True))
        with self.assertLogs(level="WARNING"):
            bom = self.generator.generate_bom(self.tmp)

        self.assertEqual([c.purl for c in bom.components], ["pkg:npm/good@1.0.0"])

    def test_v2_lockfile_root_requirements_without_package_json(self):
        self.write("package-lock.json", {
            "name": "app",
            "version": "1.0.0",
            "lockfileVersion": 2,
            "packages": {
                "": {"name": "app", "version": "1.0.0", "dependencies": {"a": "^1.0.0"}},
                "node_modules/a": {"version": "1.0.0"},
            },
            "dependencies": {"a": {"version": "1.0.0"}},
        })

        components = {c.purl: c for c in self.generator.generate_components(self.tmp)}

        self.assertEqual(
            components["pkg:npm/a@1.0.0"].description,
            "npm package\n\nRequired by:\n\tapp@1.0.0",
        )
