"""Unit tests for the shared folder predicates."""

import pytest

from anime_admin.services.folders import clean_folder_name, is_generic_media_folder, is_hidden


class TestGenericFolders:
    """Tests for is_generic_media_folder()."""

    @pytest.mark.parametrize("name", ["Season 1", "season 02", "S01", "Specials", "OVA", "ona", "Extras", "NC"])
    def test_generic(self, name: str) -> None:
        assert is_generic_media_folder(name) is True

    @pytest.mark.parametrize("name", ["Frieren", "Sousou no Frieren", "S", "Steins Gate"])
    def test_not_generic(self, name: str) -> None:
        assert is_generic_media_folder(name) is False

    def test_hidden(self) -> None:
        assert is_hidden(".cache")
        assert not is_hidden("Frieren")


class TestCleanFolderName:
    """Tests for clean_folder_name()."""

    def test_strips_group_tag_and_year(self) -> None:
        assert clean_folder_name("[SubsPlease] Frieren (2023)") == "Frieren"

    def test_plain_folder(self) -> None:
        assert clean_folder_name("Frieren_Season_2") == "Frieren Season 2"

    def test_only_brackets_kept(self) -> None:
        """A name that is nothing but a tag is left as is."""
        assert clean_folder_name("[Oshi no Ko]") == "[Oshi no Ko]"
