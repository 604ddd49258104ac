from __future__ import annotations

import struct
import unittest

import bankfixtures as fx
from nus3bank import open_bank, serialize
from nus3bank.cursor import padding_for
from nus3bank.errors import UnrepresentableMutation, WriteError
from nus3bank.sections import UnknownSection


def _pack_ranges(archive):
    return sorted((t.pack_offset, t.pack_offset + t.size) for t in archive.tracks if t.recognized)


class WriterTests(unittest.TestCase):
    def assertOffsetsConsistent(self, archive):
        body = archive.pack.body
        for t in archive.tracks:
            if not t.recognized:
                continue
            self.assertEqual(t.pack_offset % 4, 0)
            self.assertEqual(body[t.pack_offset : t.pack_offset + t.size], t.payload)
        ranges = _pack_ranges(archive)
        for (_, end), (start, _) in zip(ranges, ranges[1:]):
            self.assertLessEqual(end, start)

    def test_roundtrip_is_byte_identical(self):
        for data in (
            fx.three_track_bank(),
            fx.build_bank([]),
            fx.build_bank([(b"a", b"123"), (b"bb", b"45678")], with_optional=False),
            fx.build_bank([(b"a", b"1234")], unknown=(b"ZZZZ", b"opaque!"), slack=b"\x00" * 8, trailing=b"tail"),
        ):
            with self.subTest(size=len(data)):
                self.assertEqual(serialize(open_bank(data)), data)

    def test_roundtrip_keeps_layout_variants(self):
        pack, offsets = fx.pack_body([b"aaaa", b"bbbbbb"])
        blocks = [
            fx.meta_block(b"pre", offsets[0], 4, prefix=b"\x01" * 8, pairs=[(1, 0.5)]),
            fx.meta_block(b"vti", offsets[1], 6, pairs=[(2, 1.0), (3, 2.0)], value_first=True),
        ]
        data = fx.container([(b"BINF", fx.binf_body()), (b"TONE", fx.tone_body(blocks)), (b"PACK", pack)])
        a = open_bank(data)
        self.assertTrue(all(t.recognized for t in a.tracks))
        self.assertEqual(a.to_bytes(), data)

    def test_idempotent(self):
        a = open_bank(fx.three_track_bank())
        a.add_track("extra", b"\x05" * 7)
        once = serialize(a)
        twice = serialize(open_bank(once))
        self.assertEqual(once, twice)
        self.assertEqual(serialize(a), once)

    def test_three_track_scenario(self):
        a = open_bank(fx.three_track_bank())
        new_payload = fx.payload(50, 9)
        self.assertEqual(a.add_track("new", new_payload), 3)
        self.assertEqual(len(a.tracks), 4)

        b = open_bank(serialize(a))
        self.assertEqual(len(b.tracks), 4)
        self.assertEqual(b.get_payload(3), new_payload)
        self.assertEqual(b.get_track(3).name, "new")

        # ids are positional after a reparse; the pre-save archive still holds the session ids
        self.assertTrue(a.remove_track(1))
        c = open_bank(serialize(a))
        self.assertEqual([t.name for t in c.tracks], ["t0", "t2", "new"])
        self.assertEqual(
            [c.get_payload(i) for i in range(3)],
            [fx.payload(100, 0), fx.payload(300, 2), new_payload],
        )
        self.assertEqual(len(c.pack.body), sum(n + padding_for(n) for n in (100, 300, 50)))
        self.assertOffsetsConsistent(c)

    def test_offsets_consistent_after_edits(self):
        a = open_bank(fx.three_track_bank())
        a.replace_track_payload(0, b"\x01" * 3)
        a.add_track("b", b"\x02" * 5)
        a.remove_track(2)
        a.add_track("c", b"\x03" * 9)
        serialize(a)
        self.assertOffsetsConsistent(a)
        b = open_bank(a.to_bytes())
        self.assertEqual([t.size for t in b.tracks], [3, 200, 5, 9])
        self.assertOffsetsConsistent(b)

    def test_serialize_commits(self):
        a = open_bank(fx.three_track_bank())
        a.remove_track(0)
        self.assertTrue(a.has_pending_edits)
        out = serialize(a)
        self.assertFalse(a.has_pending_edits)
        self.assertEqual([t.pack_offset for t in a.tracks], [0, 200])
        self.assertEqual(len(a.tone.pointers), 2)
        # the committed state is the new baseline for discard
        a.add_track("tmp", b"t")
        a.discard_pending_edits()
        self.assertEqual(serialize(a), out)

    def test_header_fields(self):
        data = serialize(open_bank(fx.three_track_bank()))
        magic, total = struct.unpack_from("<4sI", data, 0)
        self.assertEqual(magic, b"NUS3")
        self.assertEqual(total, len(data) - 8)
        self.assertEqual(data[8:16], b"BANKTOC ")
        toc_size, count = struct.unpack_from("<II", data, 16)
        self.assertEqual(count, 7)
        self.assertEqual(toc_size, 4 + 8 * count)

    def test_unknown_section_preserved(self):
        data = fx.build_bank([(b"a", b"1234")], unknown=(b"ZZZZ", b"\xde\xad\xbe\xef\x01"))
        a = open_bank(data)
        a.add_track("b", b"5678")
        b = open_bank(serialize(a))
        unknown = [s for s in b.sections if isinstance(s, UnknownSection)]
        self.assertEqual([(s.tag, s.body) for s in unknown], [(b"ZZZZ", b"\xde\xad\xbe\xef\x01")])
        self.assertEqual([s.tag for s in b.sections], [s.tag for s in a.sections])

    def test_full_shape_bank_roundtrip_and_edit(self):
        data = fx.build_bank([(b"bgm_a", b"1234"), (b"bgm_b", b"567890")], meta=fx.full_meta_block)
        self.assertEqual(serialize(open_bank(data)), data)

        a = open_bank(data)
        a.replace_track_payload(0, b"\x11" * 10)
        b = open_bank(serialize(a))
        self.assertEqual(b.diagnostics, [])
        self.assertEqual(b.get_payload(0), b"\x11" * 10)
        self.assertEqual(b.get_payload(1), b"567890")
        self.assertEqual(b.tone.blocks()[1], fx.full_meta_block(b"bgm_b", 12, 6))
        self.assertOffsetsConsistent(b)


class UnrecognizedLayoutTests(unittest.TestCase):
    def setUp(self):
        self.odd = fx.meta_block(b"odd", 4, 4, marker=9)
        self.data = fx.build_bank([(b"ok", b"abcd"), (b"odd-payload", b"wxyz")], extra_blocks=[self.odd])

    def test_noop_roundtrip_keeps_raw_block(self):
        a = open_bank(self.data)
        self.assertFalse(a.tracks[2].recognized)
        self.assertEqual(serialize(a), self.data)

    def test_replacing_unrecognized_track_fails_without_change(self):
        a = open_bank(self.data)
        sections_before = list(a.sections)
        a.replace_track_payload(2, b"new payload")
        with self.assertRaises(UnrepresentableMutation) as cm:
            serialize(a)
        self.assertIsInstance(cm.exception, WriteError)
        self.assertEqual(cm.exception.track_id, 2)
        self.assertEqual(a.sections, sections_before)
        self.assertTrue(a.has_pending_edits)
        a.discard_pending_edits()
        self.assertEqual(serialize(a), self.data)

    def test_edits_append_to_existing_pack(self):
        a = open_bank(self.data)
        old_pack = a.pack.body
        a.replace_track_payload(0, b"\x11" * 6)
        new_id = a.add_track("added", b"\x22" * 5)
        b = open_bank(serialize(a))
        self.assertEqual(b.pack.body[: len(old_pack)], old_pack)
        self.assertEqual(b.get_payload(0), b"\x11" * 6)
        self.assertEqual(b.get_payload(1), b"wxyz")
        self.assertEqual(b.get_payload(new_id), b"\x22" * 5)
        self.assertFalse(b.tracks[2].recognized)
        self.assertEqual(b.tracks[2].layout.raw, self.odd)
        self.assertGreaterEqual(b.get_track(0).pack_offset, len(old_pack))

    def test_removing_unrecognized_track(self):
        a = open_bank(self.data)
        self.assertTrue(a.remove_track(2))
        b = open_bank(serialize(a))
        self.assertEqual([t.name for t in b.tracks], ["ok", "odd-payload"])
        self.assertTrue(all(t.recognized for t in b.tracks))


if __name__ == "__main__":
    unittest.main()
