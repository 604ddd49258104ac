from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

import yaml

import bankfixtures as fx
from nus3bank.fileio import load_bank


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        cmd = [sys.executable, "-m", "nus3bank.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def make_workspace(self, data: bytes | None = None):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        root = Path(tmp.name)
        bank = root / "bank.nus3bank"
        bank.write_bytes(data if data is not None else fx.three_track_bank())
        return root, bank

    def test_list_info_verify(self):
        root, bank = self.make_workspace()
        listing = self.run_cli(["list", str(bank)])
        lines = listing.stdout.strip().splitlines()
        self.assertEqual(lines, ["0x0\t100\tt0", "0x1\t200\tt1", "0x2\t300\tt2"])

        as_json = json.loads(self.run_cli(["list", str(bank), "--json"]).stdout)
        self.assertEqual(as_json[2], {"id": "0x2", "name": "t2", "size": 300})

        info = self.run_cli(["info", str(bank)]).stdout
        self.assertIn("Name: bgm_test", info)
        self.assertIn("Tracks: 3", info)

        verify = self.run_cli(["verify", str(bank)])
        self.assertEqual(verify.stdout.strip(), "OK")

    def test_extract(self):
        root, bank = self.make_workspace()
        out = root / "out"
        self.run_cli(["extract", str(bank), "--outdir", str(out)])
        self.assertEqual(sorted(p.name for p in out.iterdir()), ["0x0-t0.wav", "0x1-t1.wav", "0x2-t2.wav"])
        self.assertEqual((out / "0x1-t1.wav").read_bytes(), fx.payload(200, 1))

        only = root / "only"
        proc = self.run_cli(["extract", str(bank), "0x2", "--outdir", str(only), "--quiet"])
        self.assertIn("Extracted 1/1", proc.stdout)
        self.assertEqual([p.name for p in only.iterdir()], ["0x2-t2.wav"])

    def test_add_replace_remove_workflow(self):
        root, bank = self.make_workspace()
        src = root / "new.bin"
        src.write_bytes(b"\x42" * 50)

        added = self.run_cli(["add", str(bank), str(src), "--backup"])
        self.assertIn("Added 0x3", added.stdout)
        self.assertIn("Backup", added.stdout)
        self.assertTrue((root / "bank.nus3bank.bak").exists())
        a = load_bank(str(bank))
        self.assertEqual(a.get_track(3).name, "new")
        self.assertEqual(a.get_payload(3), b"\x42" * 50)

        repl = root / "repl.bin"
        repl.write_bytes(b"\x24" * 9)
        copy = root / "copy.nus3bank"
        self.run_cli(["replace", str(bank), "0x0", str(repl), "--output", str(copy)])
        self.assertEqual(load_bank(str(copy)).get_payload(0), b"\x24" * 9)
        self.assertEqual(load_bank(str(bank)).get_track(0).size, 100)

        self.run_cli(["remove", str(bank), "0x1"])
        self.assertEqual([t.name for t in load_bank(str(bank)).tracks], ["t0", "t2", "new"])

        missing = self.run_cli(["remove", str(bank), "0x99"], expect=2)
        self.assertIn("Error:", missing.stderr)

    def test_unrecognized_track_warnings_and_errors(self):
        odd = fx.meta_block(b"odd", 0, 4, marker=9)
        root, bank = self.make_workspace(fx.build_bank([(b"ok", b"abcd")], extra_blocks=[odd]))
        listing = self.run_cli(["list", str(bank)])
        self.assertIn("Warning:", listing.stderr)
        self.assertIn("0x1\t?\todd", listing.stdout)

        out = root / "out"
        self.run_cli(["extract", str(bank), "--outdir", str(out)], expect=1)
        self.assertEqual([p.name for p in out.iterdir()], ["0x0-ok.wav"])

        src = root / "p.bin"
        src.write_bytes(b"xyz")
        before = bank.read_bytes()
        proc = self.run_cli(["replace", str(bank), "0x1", str(src)], expect=2)
        self.assertIn("Error:", proc.stderr)
        self.assertEqual(bank.read_bytes(), before)

    def test_dump(self):
        root, bank = self.make_workspace()
        doc = json.loads(self.run_cli(["dump", str(bank)]).stdout)
        self.assertEqual(len(doc["tracks"]), 3)
        out = root / "dump.yaml"
        self.run_cli(["dump", str(bank), "--format", "yaml", "--output", str(out), "--include-payloads", "--max-preview", "8"])
        ydoc = yaml.safe_load(out.read_text(encoding="utf-8"))
        self.assertEqual(ydoc["tracks"][0]["payload_preview"]["preview_len"], 8)

    def test_errors_exit_2(self):
        root, bank = self.make_workspace(b"NOPE" + b"\x00" * 32)
        proc = self.run_cli(["list", str(bank)], expect=2)
        self.assertTrue(proc.stderr.startswith("Error:"))
        proc = self.run_cli(["info", str(root / "missing.nus3bank")], expect=2)
        self.assertIn("Error: no such file or directory", proc.stderr)
        self.assertIn("missing.nus3bank", proc.stderr)


if __name__ == "__main__":
    unittest.main()
