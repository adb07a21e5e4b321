"""Test file discovery and the file tools on a temporary project"""

import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from g0.tools.file_discovery import (
    FileDiscovery,
    is_excluded_directory,
    match_score,
)
from g0.tools.files import (
    MAX_FILE_SIZE,
    FileTools,
    create_file_tools,
    normalize_path,
)
from g0.utils.logging import LoglistLogger

PROJECT_FILES = {
    "project.godot": "[application]\nconfig/name=\"Demo\"\n",
    "README.md": "# Demo project\n",
    "scripts/player.gd": (
        "extends CharacterBody2D\n\nfunc _ready():\n\tpass\n"
    ),
    "scripts/enemy.gd": "extends Node2D\n\nfunc _process(delta):\n\tpass\n",
    "scenes/main.tscn": (
        "[gd_scene format=3]\n[node name=\"Main\" type=\"Node2D\"]\n"
    ),
    ".godot/cache.gd": "extends Node\n",
    "node_modules/lib.js": "var x = 1;\n",
}


def link(test: unittest.TestCase, path: Path, target: Path) -> None:
    try:
        path.symlink_to(target, target_is_directory=target.is_dir())
    except OSError:
        test.skipTest("symbolic links not supported")


class ProjectTestCase(unittest.TestCase):

    def setUp(self):
        folder = tempfile.TemporaryDirectory()
        self.addCleanup(folder.cleanup)
        self.root = Path(folder.name).resolve() / "project"
        for name, content in PROJECT_FILES.items():
            path = self.root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding='utf-8')
        self.now = 0.0
        self.logger = LoglistLogger()
        self.discovery = FileDiscovery(
            self.root, ttl=30, clock=lambda: self.now, logger=self.logger
        )


class TestFileDiscovery(ProjectTestCase):

    def test_excluded_directory(self):
        self.assertTrue(is_excluded_directory(".git"))
        self.assertTrue(is_excluded_directory("Node_Modules"))
        self.assertFalse(is_excluded_directory("scripts"))

    def test_files_ordered(self):
        self.assertEqual(
            self.discovery.get_files(),
            [
                "project.godot",
                "scenes/main.tscn",
                "scripts/enemy.gd",
                "scripts/player.gd",
                "README.md",
            ],
        )

    def test_cache_ttl(self):
        self.discovery.get_files()
        (self.root / "scripts" / "boss.gd").write_text("extends Node\n")
        self.assertNotIn("scripts/boss.gd", self.discovery.get_files())

        self.now = 31.0
        self.assertIn("scripts/boss.gd", self.discovery.get_files())

    def test_invalidate(self):
        self.discovery.get_files()
        (self.root / "notes.txt").write_text("notes\n")
        self.discovery.invalidate()
        self.assertIn("notes.txt", self.discovery.get_files())

    def test_force_refresh(self):
        self.discovery.get_files()
        (self.root / "notes.txt").write_text("notes\n")
        self.assertIn("notes.txt", self.discovery.get_files(force_refresh=True))

    def test_max_files(self):
        discovery = FileDiscovery(self.root, max_files=2, logger=self.logger)
        self.assertEqual(len(discovery.get_files()), 2)

    def test_missing_root(self):
        discovery = FileDiscovery(self.root / "missing", logger=self.logger)
        self.assertEqual(discovery.get_files(), [])
        self.assertEqual(self.logger.count_logs(level=2), 1)

    def test_links_out_of_project(self):
        outside = self.root.parent / "outside"
        outside.mkdir()
        (outside / "secret.txt").write_text("TOPSECRET=hunter2\n")
        link(self, self.root / "linked", outside)
        link(self, self.root / "leak.txt", outside / "secret.txt")
        link(self, self.root / "alias.gd", self.root / "scripts" / "enemy.gd")

        files = self.discovery.get_files()
        self.assertIn("alias.gd", files)
        self.assertNotIn("linked/secret.txt", files)
        self.assertNotIn("leak.txt", files)

    def test_match_score(self):
        self.assertEqual(match_score("scripts/player.gd", "player"), 1025)
        self.assertEqual(match_score("scripts/player.gd", "play"), 525)
        self.assertEqual(match_score("README.md", "me.md"), 200)
        self.assertEqual(match_score("scripts/player.gd", "scripts/"), 125)
        self.assertEqual(match_score("scripts/player.gd", "plyr"), 75)
        self.assertEqual(match_score("scripts/player.gd", "zzz"), 0)

    def test_search(self):
        self.assertEqual(self.discovery.search("player"), ["scripts/player.gd"])
        self.assertEqual(
            self.discovery.search(".gd")[:2],
            ["scripts/enemy.gd", "scripts/player.gd"],
        )
        self.assertEqual(len(self.discovery.search("", max_results=3)), 3)


class TestFileTools(ProjectTestCase):

    def setUp(self):
        super().setUp()
        self.tools = FileTools(self.root, self.discovery, logger=self.logger)

    def test_normalize_path(self):
        self.assertEqual(normalize_path("res://scripts/a.gd"), "scripts/a.gd")
        self.assertEqual(normalize_path("@scripts\\a.gd"), "scripts/a.gd")
        self.assertEqual(normalize_path("/scripts/a.gd"), "scripts/a.gd")

    def test_read_file(self):
        text = self.tools.read_file("scripts/player.gd")
        self.assertTrue(text.startswith("**File: scripts/player.gd**"))
        self.assertIn("```gdscript", text)
        self.assertIn("   1 | extends CharacterBody2D", text)
        self.assertIn("   3 | func _ready():", text)

    def test_read_file_godot_path(self):
        text = self.tools.read_file("res://scripts/player.gd")
        self.assertTrue(text.startswith("**File: scripts/player.gd**"))

    def test_read_file_outside_root(self):
        (self.root.parent / "secret.txt").write_text("secret\n")
        text = self.tools.read_file("../secret.txt")
        self.assertTrue(text.startswith("Error: Access denied"))
        self.assertNotIn("secret\n", text)

    def test_read_file_not_found(self):
        text = self.tools.read_file("scripts/playr.gd")
        self.assertTrue(text.startswith("Error: File not found"))
        self.assertIn("Did you mean one of these?", text)
        self.assertIn("scripts/player.gd", text)

    def test_read_file_too_large(self):
        (self.root / "big.txt").write_text("x" * (MAX_FILE_SIZE + 1))
        text = self.tools.read_file("big.txt")
        self.assertTrue(text.startswith("Error: File too large"))

    def test_read_binary_file(self):
        (self.root / "data.bin").write_bytes(b"\x00\x01\x02")
        text = self.tools.read_file("data.bin")
        self.assertTrue(text.startswith("Error: Cannot read binary file"))

    def test_list_files(self):
        text = self.tools.list_files()
        self.assertTrue(text.startswith("**Directory: /**"))
        self.assertIn("  scripts/", text)
        self.assertIn("  project.godot (", text)
        self.assertNotIn(".godot/", text)

    def test_list_files_pattern(self):
        text = self.tools.list_files("scripts", "*.gd")
        self.assertIn("enemy.gd", text)
        self.assertIn("player.gd", text)
        text = self.tools.list_files("scripts", "*.cs")
        self.assertIn("(Empty directory)", text)

    def test_list_files_errors(self):
        self.assertTrue(
            self.tools.list_files("missing").startswith(
                "Error: Directory not found"
            )
        )
        self.assertTrue(
            self.tools.list_files("..").startswith("Error: Access denied")
        )

    def test_search_files(self):
        text = self.tools.search_files("func _ready")
        self.assertTrue(text.startswith("Found 1 match(es) in 1 file(s)"))
        self.assertIn("**scripts/player.gd**", text)
        self.assertIn("3:func _ready():", text)
        self.assertIn("1-extends CharacterBody2D", text)

    def test_search_files_filters(self):
        text = self.tools.search_files("Node2D", file_types="gd")
        self.assertIn("scripts/enemy.gd", text)
        self.assertNotIn("scenes/main.tscn", text)

        text = self.tools.search_files("Node2D", exclude_patterns="scenes/*")
        self.assertIn("scripts/enemy.gd", text)
        self.assertNotIn("scenes/main.tscn", text)

    def test_search_files_options(self):
        text = self.tools.search_files("node2d", case_sensitive=True)
        self.assertTrue(text.startswith("No matches found"))
        text = self.tools.search_files("func (", use_regex=False)
        self.assertTrue(text.startswith("No matches found"))
        text = self.tools.search_files("func (")
        self.assertTrue(text.startswith("Error: Invalid search pattern"))
        text = self.tools.search_files("pas", whole_word=True)
        self.assertTrue(text.startswith("No matches found"))

    def test_search_files_truncated(self):
        text = self.tools.search_files("extends", max_results=1)
        self.assertTrue(text.startswith("Found 1 match(es) in 1 file(s)"))
        self.assertIn("... truncated (showing first 1 results)", text)

    def test_find_files(self):
        text = self.tools.find_files("*.gd")
        self.assertTrue(text.startswith('Found 2 file(s) matching "*.gd"'))
        self.assertIn("  scripts/enemy.gd (", text)
        text = self.tools.find_files("**/player*")
        self.assertIn("scripts/player.gd", text)
        self.assertNotIn("enemy", text)
        text = self.tools.find_files("*.xyz")
        self.assertTrue(text.startswith("No files found"))

    def test_find_files_limit(self):
        text = self.tools.find_files("*", max_files=2)
        self.assertIn("... and 3 more files", text)

    def test_links_out_of_project(self):
        outside = self.root.parent / "outside"
        outside.mkdir()
        (outside / "secret.txt").write_text("TOPSECRET=hunter2\n")
        link(self, self.root / "linked", outside)

        self.assertTrue(
            self.tools.read_file("linked/secret.txt").startswith(
                "Error: Access denied"
            )
        )
        text = self.tools.search_files("TOPSECRET")
        self.assertTrue(text.startswith("No matches found"))
        self.assertNotIn("hunter2", text)
        text = self.tools.find_files("secret*")
        self.assertTrue(text.startswith("No files found"))

    def test_discovered_path_outside_root(self):
        (self.root.parent / "secret.txt").write_text("TOPSECRET=hunter2\n")
        with mock.patch.object(
            self.discovery, 'get_files', return_value=["../secret.txt"]
        ):
            text = self.tools.search_files("TOPSECRET")
            self.assertTrue(text.startswith("No matches found"))
            text = self.tools.find_files("*.txt")
            self.assertTrue(text.startswith("No files found"))
        self.assertGreater(self.logger.count_logs(level=1), 0)

    def test_descriptors(self):
        tools = create_file_tools(self.root, self.discovery, self.logger)
        self.assertEqual(
            [t.name for t in tools],
            ["read_file", "list_files", "search_files", "find_files"],
        )
        text = asyncio.run(
            tools[0].invoke('{"file_path": "scripts/enemy.gd"}')
        )
        self.assertIn("extends Node2D", text)


if __name__ == "__main__":
    unittest.main()
