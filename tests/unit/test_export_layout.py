"""Unit tests for the export directory layout."""
import os
from datetime import datetime

from lxml import etree

from mod_translator.content_graph import Owner
from mod_translator.export_layout import (
    build_generated_package_id,
    new_export_token,
    prepare_export_directory,
    sanitize_export_name,
    sanitize_package_id_part,
)
from mod_translator.workset import Workset

TOKEN = "20260102_030405"


class TestPrepareExportDirectory:

    def test_creates_about_file_and_language_folders(self, tmp_path, owner):
        worksets = [Workset(language_folder="French"), Workset(language_folder="German")]

        output_dir = prepare_export_directory(owner, worksets, str(tmp_path), export_token=TOKEN)

        assert os.path.basename(output_dir) == f"TranslatorExport_author.sample_{TOKEN}"
        for folder in ("French", "German"):
            assert os.path.isdir(os.path.join(output_dir, "Languages", folder, "Keyed"))
            assert os.path.isdir(os.path.join(output_dir, "Languages", folder, "DefInjected"))

        about = etree.parse(os.path.join(output_dir, "About", "About.xml")).getroot()
        assert about.tag == "ModMetaData"
        assert about.findtext("packageId") == "translator.author.sample.20260102030405"
        assert about.findtext("name") == "Sample Mod Translation"
        assert about.findtext("description") == "Generated by Auto Translator for Sample Mod."
        assert about.findtext("author") == "Translator"
        assert about.findtext("supportedVersions/li") == "1.5"
        assert about.findtext("loadAfter/li") == "author.sample"

    def test_player_facing_id_and_supported_version(self, tmp_path, mod_root):
        owner = Owner(package_id="author.sample_steam", name="Sample", root_dir=mod_root,
                      package_id_player_facing="Author.Sample")

        output_dir = prepare_export_directory(owner, [], str(tmp_path), export_token=TOKEN,
                                              supported_version="1.6")

        about = etree.parse(os.path.join(output_dir, "About", "About.xml")).getroot()
        assert about.findtext("loadAfter/li") == "Author.Sample"
        assert about.findtext("supportedVersions/li") == "1.6"
        assert os.path.basename(output_dir) == f"TranslatorExport_Author.Sample_{TOKEN}"


class TestNaming:

    def test_package_id_part_is_lowercased_and_cleaned(self):
        assert sanitize_package_id_part("Author Name/Mod!") == "author_name_mod"
        assert sanitize_package_id_part("___") == "unknown"
        assert sanitize_package_id_part("") == "unknown"

    def test_export_name_replaces_invalid_file_characters(self):
        assert sanitize_export_name("a/b:c") == "a_b_c"
        assert sanitize_export_name("") == "unknown"

    def test_generated_package_id(self, owner):
        assert build_generated_package_id(owner, "20260102_030405") == "translator.author.sample.20260102030405"

    def test_export_token_format(self):
        assert new_export_token(datetime(2026, 1, 2, 3, 4, 5)) == TOKEN
