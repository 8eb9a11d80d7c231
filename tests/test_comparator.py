import unittest

from lib.battle import (
    CATEGORIES,
    FeatureRule,
    MetricSet,
    PlaylistInfo,
    PopularityRule,
    Verdict,
    average,
    determine_winner,
)


def _side(values, name="", image=""):
    return MetricSet(values=values, playlist=PlaylistInfo(id="x" * 22, name=name, image_url=image))


class AverageTests(unittest.TestCase):
    def test_mean(self):
        self.assertAlmostEqual(average([0.2, 0.4, 0.9]), (0.2 + 0.4 + 0.9) / 3)

    def test_empty_is_zero(self):
        self.assertEqual(average([]), 0)

    def test_missing_values_count_as_zero(self):
        self.assertAlmostEqual(average([1.0, None]), 0.5)


class FeatureRuleTests(unittest.TestCase):
    def test_lower_wins_for_inverted_category(self):
        rule = FeatureRule(CATEGORIES["Sadder"])
        result = determine_winner(_side([0.2], "Blue"), _side([0.8], "Sunny"), rule)
        self.assertEqual(result.verdict, Verdict.FIRST)
        self.assertEqual(result.message, "Blue is sadder!")
        self.assertIsNone(result.image)

    def test_higher_wins_otherwise(self):
        rule = FeatureRule(CATEGORIES["Energetic"])
        result = determine_winner(_side([0.2], "Calm"), _side([0.8], "Gym"), rule)
        self.assertEqual(result.verdict, Verdict.SECOND)
        self.assertEqual(result.message, "Gym is more energetic!")

    def test_loudness_compares_negative_decibels(self):
        rule = FeatureRule(CATEGORIES["Louder"])
        result = determine_winner(_side([-5.0, -7.0], "Metal"), _side([-12.0], "Ambient"), rule)
        self.assertEqual(result.verdict, Verdict.FIRST)

    def test_tie(self):
        rule = FeatureRule(CATEGORIES["Danceable"])
        result = determine_winner(_side([0.5, 0.5]), _side([0.5]), rule)
        self.assertEqual(result.verdict, Verdict.TIE)
        self.assertEqual(result.message, "Both playlists are equally danceable!")

    def test_unnamed_playlist_falls_back_to_side_label(self):
        rule = FeatureRule(CATEGORIES["Happier"])
        result = determine_winner(MetricSet([0.1]), MetricSet([0.9]), rule)
        self.assertEqual(result.message, "Playlist 2 is happier!")


class PopularityRuleTests(unittest.TestCase):
    def test_less_popular_playlist_wins_with_identity(self):
        p1 = _side([10, 20, 30], "Deep Cuts", "https://img/p1.jpg")
        p2 = _side([80, 90], "Top Hits", "https://img/p2.jpg")
        result = determine_winner(p1, p2, PopularityRule())
        self.assertEqual(result.verdict, Verdict.FIRST)
        self.assertEqual(result.name, "Deep Cuts")
        self.assertEqual(result.image, "https://img/p1.jpg")
        self.assertEqual(result.message, "Deep Cuts is more underground, smell some good taste in there!")
        self.assertEqual(result.means, {"first": 20.0, "second": 85.0})

    def test_tie_has_no_identity(self):
        result = determine_winner(_side([50], "A"), _side([40, 60], "B"), PopularityRule())
        self.assertEqual(result.verdict, Verdict.TIE)
        self.assertEqual(result.message, "Both playlists are equally underground!")
        self.assertIsNone(result.name)
        self.assertIsNone(result.image)


if __name__ == "__main__":
    unittest.main()
