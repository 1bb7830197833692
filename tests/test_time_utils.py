import unittest

from matchclock.utils import (
    fmt_mmss, format_game_time_display, format_play_time, from_iso, game_minute, to_iso
)


class TimeUtilsTests(unittest.TestCase):
    def test_fmt_mmss(self) -> None:
        self.assertEqual(fmt_mmss(0), "00:00")
        self.assertEqual(fmt_mmss(90), "01:30")
        self.assertEqual(fmt_mmss(3661), "61:01")

    def test_format_play_time(self) -> None:
        self.assertEqual(format_play_time(125), "2:05")
        self.assertEqual(format_play_time(5000, "long"), "1h 23m")
        self.assertEqual(format_play_time(600, "long"), "10m")
        self.assertEqual(format_play_time(3660, "verbose"), "1 hour 1 minute")
        self.assertEqual(format_play_time(45, "verbose"), "45 seconds")

    def test_game_minute_and_display(self) -> None:
        self.assertEqual(game_minute(59), 0)
        self.assertEqual(game_minute(-5), 0)
        self.assertEqual(format_game_time_display(930, 1), "15' (1st Half)")
        self.assertEqual(format_game_time_display(2700, 2), "45' (2nd Half)")

    def test_iso_round_trip_keeps_milliseconds(self) -> None:
        text = to_iso(1_700_000_000.25)
        self.assertEqual(text, "2023-11-14T22:13:20.250Z")
        self.assertAlmostEqual(from_iso(text), 1_700_000_000.25)
        self.assertIsNone(from_iso(None))
        self.assertEqual(from_iso("2023-11-14T22:13:20"), 1_700_000_000.0)

    def test_from_iso_accepts_any_fraction_length_and_lowercase_zone(self) -> None:
        self.assertAlmostEqual(from_iso("2023-11-14T22:13:20.1234567Z"), 1_700_000_000.123456, places=5)
        self.assertEqual(from_iso("2023-11-14T22:13:20.5z"), 1_700_000_000.5)
        self.assertEqual(from_iso("2023-11-14T22:13:20.25+00:00"), 1_700_000_000.25)


if __name__ == "__main__":
    unittest.main()
