"""
Tests for card identity matching.

Table-driven: these heuristics are where cross-catalog mismatches come from,
so every known title shape gets a row.
"""
import pytest

from tcgprice.services.matching import (
    ListingCriteria,
    SetMatch,
    card_numbers_match,
    clean_name,
    extract_listing_number,
    extract_set_from_title,
    filter_by_name,
    filter_relevant_listings,
    is_known_set,
    listing_is_relevant,
    listing_price,
    normalize_card_number,
    rank_candidates,
    search_name,
    set_name_matches,
)


class TestCleanName:
    """Tests for clean_name."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Charizard VMAX #074/189 Holo", "Charizard"),
            ("Pikachu - Reverse Holo 25", "Pikachu"),
            ("Team Rocket's Meowth", "Team Rocket's Meowth"),
            ("Radiant Charizard", "Radiant Charizard"),
            ("Charizard - Shiny", "Charizard"),
            ("Mewtwo GX", "Mewtwo"),
            ("Pokemon Umbreon VMAX 215/203 Evolving Skies Alt Art", "Umbreon"),
            ("  Snorlax    #143  ", "Snorlax"),
            ("Rare Candy", "Rare Candy"),
            ("Rare Candy 125/131 Holo", "Rare Candy"),
            ("Pokemon Catcher", "Pokemon Catcher"),
            ("Pokemon Rare Candy Reverse Holo", "Rare Candy"),
            ("Pokémon Center Lady Full Art", "Pokémon Center Lady"),
            ("", ""),
        ],
    )
    def test_examples(self, raw, expected):
        assert clean_name(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "Charizard VMAX #074/189 Holo",
            "Pikachu - Reverse Holo 25",
            "Team Rocket's Meowth",
            "Lugia V Alt Art Silver Tempest 186/195",
            "Pokemon TCG Mew ex Secret Rare",
            "Rare Candy 125/131 Holo",
        ],
    )
    def test_idempotent(self, raw):
        once = clean_name(raw)
        assert clean_name(once) == once

    def test_no_number_or_rarity_tokens_remain(self):
        cleaned = clean_name("Charizard VMAX #074/189 Holo")
        assert not any(ch.isdigit() for ch in cleaned)
        for token in ("vmax", "holo", "#", "/"):
            assert token not in cleaned.lower()


class TestNormalizeCardNumber:
    """Tests for normalize_card_number."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("007", "7"),
            ("7", "7"),
            ("074/189", "74"),
            ("#25", "25"),
            ("gg044", "GG44"),
            ("GG44", "GG44"),
            ("TG30", "TG30"),
            ("25a", "25A"),
            ("0", "0"),
            (None, ""),
        ],
    )
    def test_examples(self, raw, expected):
        assert normalize_card_number(raw) == expected

    @pytest.mark.parametrize("raw", ["007", "074/189", "gg044", "25a", "SWSH050"])
    def test_idempotent(self, raw):
        once = normalize_card_number(raw)
        assert normalize_card_number(once) == once

    def test_zero_padding_insensitive(self):
        assert normalize_card_number("007") == normalize_card_number("7") == "7"


class TestCardNumbersMatch:
    """Tests for card_numbers_match."""

    @pytest.mark.parametrize(
        "candidate,target,expected",
        [
            ("020", "20", True),
            ("20/189", "020", True),
            ("25a", "25", True),
            ("gg044", "GG44", True),
            ("GG44", "44", False),
            ("74", "20", False),
            (None, "1", False),
            ("1", None, False),
        ],
    )
    def test_examples(self, candidate, target, expected):
        assert card_numbers_match(candidate, target) is expected


class TestSetNames:
    """Tests for set name comparison helpers."""

    @pytest.mark.parametrize(
        "left,right,expected",
        [
            ("Darkness Ablaze", "darkness ablaze", SetMatch.EXACT),
            ("Champion's Path", "Champions Path", SetMatch.EXACT),
            ("Crown Zenith", "Crown Zenith Galarian Gallery", SetMatch.PARTIAL),
            ("Crown Zenith Galarian Gallery", "Crown Zenith", SetMatch.PARTIAL),
            ("Base", "Jungle", SetMatch.NONE),
            (None, "Jungle", SetMatch.NONE),
        ],
    )
    def test_set_name_matches(self, left, right, expected):
        assert set_name_matches(left, right) == expected

    @pytest.mark.parametrize(
        "name,expected",
        [(None, False), ("", False), ("Unknown Set", False), ("all", False), ("Jungle", True)],
    )
    def test_is_known_set(self, name, expected):
        assert is_known_set(name) is expected

    def test_extract_set_from_title(self):
        assert extract_set_from_title("Charizard VMAX Darkness Ablaze 020") == "Darkness Ablaze"
        assert extract_set_from_title("Pikachu promo") == "Unknown Set"


def test_search_name():
    assert search_name("Team Rocket's Meowth") == "Meowth"
    assert search_name("Charizard ex Special") == "Charizard ex"
    assert search_name("Pikachu") == "Pikachu"


class TestCandidateRanking:
    """Tests for rank_candidates and filter_by_name."""

    CANDIDATES = [
        {"name": "Charizard ex", "number": "199"},
        {"name": "Dark Charizard", "number": "4"},
        {"name": "Charizard", "number": "11"},
        {"name": "Charizard", "number": "4"},
    ]

    def _rank(self, name, number):
        return rank_candidates(
            self.CANDIDATES,
            name,
            number,
            name_of=lambda c: c["name"],
            number_of=lambda c: c["number"],
        )

    def test_number_match_ranks_first(self):
        ranked = self._rank("Charizard", "004")
        assert ranked[0]["number"] == "4"
        assert ranked[1]["number"] == "4"

    def test_exact_name_beats_contains(self):
        ranked = self._rank("Charizard", None)
        assert ranked[0] == {"name": "Charizard", "number": "11"}

    def test_order_kept_within_tier(self):
        ranked = self._rank("Blastoise", None)
        assert ranked == self.CANDIDATES

    def test_filter_by_name(self):
        kept = filter_by_name(self.CANDIDATES, "Dark Charizard Holo", name_of=lambda c: c["name"])
        assert kept == [{"name": "Dark Charizard", "number": "4"}]


class TestListingRelevance:
    """Tests for sold-listing relevance filtering."""

    CRITERIA = ListingCriteria(card_name="Charizard", card_number="020", set_name="Darkness Ablaze")

    @pytest.mark.parametrize(
        "title,price,reason",
        [
            ("PSA 10 Charizard 020/189 Darkness Ablaze", 200.0, "graded"),
            ("CGC 9.5 Charizard Darkness Ablaze", 90.0, "graded"),
            ("Charizard lot of 5 Darkness Ablaze", 30.0, "bulk or sealed product"),
            ("Pikachu 020/189 Darkness Ablaze", 5.0, "missing name words: charizard"),
            ("Charizard 074/189 Darkness Ablaze", 25.0, "conflicting card number 74"),
            ("Charizard 020/189 Vivid Voltage", 25.0, "set name mismatch"),
            ("Charizard 020/189 Darkness Ablaze", 0.0, "price out of range: 0.0"),
            ("Charizard 020/189 Darkness Ablaze", 200000.0, "price out of range: 200000.0"),
            ("Charizard 020/189 Darkness Ablaze", 24.0, "matched"),
            ("Charizard VMAX Darkness Ablaze NM", 24.0, "matched"),
        ],
    )
    def test_examples(self, title, price, reason):
        ok, why = listing_is_relevant(title, price, self.CRITERIA)
        assert why == reason
        assert ok is (reason == "matched")

    def test_set_overlap_threshold_is_tunable(self):
        strict = ListingCriteria(card_name="Charizard", set_name="Darkness Ablaze")
        loose = ListingCriteria(card_name="Charizard", set_name="Darkness Ablaze", set_overlap_threshold=0.5)

        assert listing_is_relevant("Charizard Darkness", 20.0, strict) == (False, "set name mismatch")
        assert listing_is_relevant("Charizard Darkness", 20.0, loose) == (True, "matched")

    def test_unknown_set_skips_set_check(self):
        criteria = ListingCriteria(card_name="Charizard", set_name="Unknown Set")
        assert listing_is_relevant("Charizard holo", 20.0, criteria) == (True, "matched")

    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Charizard 020/189", "20"),
            ("Pikachu #25 promo", "25"),
            ("Mew No. 151", "151"),
            ("Charizard VMAX", None),
        ],
    )
    def test_extract_listing_number(self, title, expected):
        assert extract_listing_number(title) == expected

    def test_listing_price(self):
        assert listing_price({"sale_price": "12.5"}) == 12.5
        assert listing_price({"currentPrice": {"value": 8}}) == 8.0
        assert listing_price({"sale_price": "n/a"}) == 0.0
        assert listing_price({}) == 0.0

    def test_filter_relevant_listings(self, ebay_results):
        kept = filter_relevant_listings(ebay_results["products"], self.CRITERIA)
        assert [item["sale_price"] for item in kept] == [24.0, 26.0]
