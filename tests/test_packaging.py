"""Tests for packaging and pyproject.toml correctness."""

import os
import unittest


def _load_pyproject():
    import tomllib
    toml_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)), "pyproject.toml"
    )
    with open(toml_path, "rb") as f:
        return tomllib.load(f)


class TestPyproject(unittest.TestCase):
    def test_runtime_deps_declared(self):
        base_deps = _load_pyproject()["project"]["dependencies"]
        for name in ("numpy", "opencv-python-headless", "scipy", "Pillow", "PyYAML", "tqdm"):
            self.assertTrue(any(d.startswith(name) for d in base_deps), name)

    def test_no_ml_runtime_deps(self):
        base_deps = _load_pyproject()["project"]["dependencies"]
        self.assertFalse(any("torch" in d or "onnxruntime" in d for d in base_deps))

    def test_test_extra_has_pytest(self):
        test_deps = _load_pyproject()["project"]["optional-dependencies"]["test"]
        self.assertTrue(any(d.startswith("pytest") for d in test_deps))

    def test_console_script_points_at_cli(self):
        scripts = _load_pyproject()["project"]["scripts"]
        self.assertEqual(scripts["TexChain"], "TexChain.cli:main")


if __name__ == "__main__":
    unittest.main(verbosity=2)
