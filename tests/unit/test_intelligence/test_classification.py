"""Unit tests for ListingClassifier."""

import pytest

from leadcrawler.intelligence.classification import (
    ListingClassifier,
    host_in,
    load_classification,
    website_host,
)
from leadcrawler.models import ScrapedListing


@pytest.fixture
def classifier():
    return ListingClassifier()


class TestWebsiteHost:
    """Tests for host extraction helpers."""

    def test_strips_www_and_scheme(self):
        """Test www prefix and scheme are dropped."""
        assert website_host("https://www.Example.com/path?q=1") == "example.com"
        assert website_host("example.com.ar") == "example.com.ar"
        assert website_host("") == ""

    def test_host_in_matches_subdomains_only(self):
        """Test parent-domain matching does not match lookalike hosts."""
        assert host_in("m.facebook.com", ["facebook.com"])
        assert host_in("x.com", ["x.com"])
        assert not host_in("fox.com", ["x.com"])
        assert not host_in("notfacebook.com", ["facebook.com"])


class TestClassifyWebsite:
    """Tests for real / social / directory classification."""

    @pytest.mark.parametrize("url", [
        "https://www.instagram.com/dentalpalermo",
        "https://m.facebook.com/dentalpalermo",
        "https://wa.me/5491155550000",
    ])
    def test_social_profiles(self, classifier, url):
        """Test social profiles are not real websites."""
        result = classifier.classify_website(url)

        assert result.is_social_media
        assert not result.has_real_website
        assert not result.is_directory

    @pytest.mark.parametrize("url", [
        "https://www.doctoralia.com.ar/clinica/palermo",
        "https://linktr.ee/dentalpalermo",
        "https://dentalpalermo.wixsite.wix.com",
        "https://sites.google.com/view/dental",
    ])
    def test_directories_and_builders(self, classifier, url):
        """Test listing platforms and site builders count as directories."""
        result = classifier.classify_website(url)

        assert result.is_directory
        assert not result.has_real_website

    def test_real_website(self, classifier):
        """Test an own domain is a real website."""
        result = classifier.classify_website("https://www.dentalpalermo.com.ar")

        assert result.has_real_website
        assert not result.is_social_media
        assert not result.is_directory

    def test_missing_website(self, classifier):
        """Test no URL means no website at all."""
        result = classifier.classify_website(None)

        assert not (result.has_real_website or result.is_social_media or result.is_directory)


class TestSocialHandles:
    """Tests for social handle extraction."""

    def test_instagram(self, classifier):
        """Test instagram link is kept as instagram_url."""
        url = "https://instagram.com/pizzeria.guerrin"
        assert classifier.extract_social_handles(url) == {"instagram_url": url}

    def test_facebook(self, classifier):
        """Test facebook link is kept as facebook_url."""
        url = "https://www.facebook.com/guerrin"
        assert classifier.extract_social_handles(url) == {"facebook_url": url}

    def test_whatsapp_number(self, classifier):
        """Test the number is pulled out of a WhatsApp link."""
        assert classifier.extract_social_handles("https://wa.me/5491155550000") == {
            "whatsapp_number": "5491155550000"
        }
        assert classifier.extract_social_handles(
            "https://api.whatsapp.com/send?phone=+5491155550000"
        ) == {"whatsapp_number": "+5491155550000"}

    def test_real_site_has_no_handles(self, classifier):
        """Test ordinary domains yield nothing."""
        assert classifier.extract_social_handles("https://guerrin.com") == {}


class TestRelevanceScore:
    """Tests for keyword relevance scoring."""

    def test_name_match_scores_at_least_100(self, classifier):
        """Test a literal keyword in the name scores at least 100."""
        assert classifier.relevance_score("Dentista Palermo", "Clínica", "dentista") >= 100

    def test_name_and_category_match(self, classifier):
        """Test name, category and synonym hits add up."""
        score = classifier.relevance_score("Dentista Palermo", "Dentista", "dentista")

        assert score == 100 + 80 + 60

    def test_category_synonym(self, classifier):
        """Test a synonym in the category scores 60."""
        assert classifier.relevance_score("Sonrisas", "Clínica dental", "dentista") == 60

    def test_name_synonym(self, classifier):
        """Test a synonym only in the name scores 40."""
        assert classifier.relevance_score("Barbería Don Pepe", "Salón", "peluqueria") == 40

    def test_accents_are_ignored(self, classifier):
        """Test keyword and listing text compare without diacritics."""
        assert classifier.relevance_score("Peluquería Ana", "", "peluqueria") >= 100

    def test_no_match_floor(self, classifier):
        """Test unrelated listings get the floor score."""
        assert classifier.relevance_score("Kiosco Pepe", "Kiosco", "dentista") == 20

    def test_excluded_category_scores_zero(self, classifier):
        """Test excluded categories score exactly 0 when nothing else matched."""
        assert classifier.relevance_score("Banco Nación", "Cajero automático", "dentista") == 0

    def test_excluded_category_penalty_is_floored(self, classifier):
        """Test the penalty never drives the score below zero."""
        assert classifier.relevance_score("YPF", "Estación de servicio", "restaurante") == 0

    def test_excluded_category_whole_word(self, classifier):
        """Test excluded terms only match whole words."""
        assert not classifier.is_excluded_category("Batman store")
        assert classifier.is_excluded_category("ATM")


class TestFranchises:
    """Tests for franchise detection."""

    def test_known_chain(self, classifier):
        """Test chains are recognized regardless of case and accents."""
        assert classifier.is_franchise("McDonald's Palermo")
        assert classifier.is_franchise("RE/MAX Premium")
        assert classifier.is_franchise("Farmacity Santa Fe")

    def test_chain_name_must_be_whole_word(self, classifier):
        """Test short chain names do not match inside other words."""
        assert not classifier.is_franchise("Escoto Hermanos")
        assert not classifier.is_franchise("Dentista Palermo")


class TestApply:
    """Tests for applying classification to a listing."""

    def test_apply_fills_flags(self, classifier):
        """Test flags, social url and relevance are written to the listing."""
        listing = ScrapedListing(
            name="Dentista Sonrisas",
            place_id="0x1",
            category="Dentista",
            website="https://www.instagram.com/sonrisas",
        )

        classifier.apply(listing, "dentista")

        assert listing.is_social_media
        assert not listing.has_real_website
        assert listing.social_media_url == "https://www.instagram.com/sonrisas"
        assert listing.instagram_url == "https://www.instagram.com/sonrisas"
        assert listing.relevance_score == 240


class TestLoadClassification:
    """Tests for table loading."""

    def test_bundled_tables(self):
        """Test the bundled YAML loads with normalized keys."""
        tables = load_classification()

        assert "instagram.com" in tables.social_media_domains
        assert "peluqueria" in tables.category_synonyms
        assert "cajero automatico" in tables.excluded_categories

    def test_custom_tables(self, tmp_path):
        """Test tables can be loaded from another file."""
        path = tmp_path / "tables.yaml"
        path.write_text(
            "social_media_domains: [Example.Social]\n"
            "category_synonyms:\n"
            "  Panadería: [pan, Facturas]\n",
            encoding="utf-8",
        )

        tables = load_classification(path)

        assert tables.social_media_domains == ["example.social"]
        assert tables.category_synonyms == {"panaderia": ["pan", "facturas"]}
        assert ListingClassifier(tables).classify_website("https://example.social/x").is_social_media
