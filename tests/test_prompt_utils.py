from pathlib import Path

from subrelay_lib.lang_utils import is_valid_target_language, normalize_lang_code
from subrelay_lib.prompt_utils import (
    build_bulk_prompt,
    build_output_name_prompt,
    build_single_prompt,
    parse_output_name_suggestions,
)


def test_single_prompt_contains_text_and_language():
    prompt = build_single_prompt("Good morning", "he")
    assert "to he" in prompt
    assert prompt.endswith("Good morning")


def test_bulk_prompt_numbers_entries_and_describes_format():
    prompt = build_bulk_prompt(["First", "Second"], "es")
    assert "Translate the following 2 subtitle entries to es." in prompt
    assert '{"index": 1, "translated": "<translated text 1>"}' in prompt
    assert prompt.endswith("1. First\n2. Second\n")


def test_output_name_prompt_lists_placeholders():
    prompt = build_output_name_prompt("movie.mkv", "fr", count=3)
    assert '"movie.mkv"' in prompt
    assert "<filename3>.srt" in prompt
    assert "<filename4>.srt" not in prompt


def test_parse_output_name_suggestions(tmp_path):
    reply = (
        "Here are some names:\n"
        "movie.fr.srt\n"
        "`movie_fr.srt`\n"
        "\"fr-movie.srt\"\n"
        "/some/dir/movie.french.srt\n"
        "movie.fr.txt\n"
        "\n"
    )
    assert parse_output_name_suggestions(reply, tmp_path) == [
        tmp_path / "movie.fr.srt",
        tmp_path / "movie_fr.srt",
        tmp_path / "fr-movie.srt",
        tmp_path / "movie.french.srt",
    ]


def test_parse_output_name_suggestions_limit_and_empty():
    reply = "\n".join(f"name{i}.srt" for i in range(10))
    assert len(parse_output_name_suggestions(reply, Path("."), limit=6)) == 6
    assert parse_output_name_suggestions("", Path(".")) == []


def test_language_codes():
    assert normalize_lang_code("eng") == "en"
    assert normalize_lang_code("heb") == "he"
    assert normalize_lang_code("fre") == normalize_lang_code("fra") == "fr"
    assert normalize_lang_code("zh-cn") == "zh"
    assert normalize_lang_code("pt-BR") == "pt"
    assert normalize_lang_code("xyz") is None
    assert normalize_lang_code(None) is None
    assert is_valid_target_language("zh-TW")
    assert not is_valid_target_language("")
    assert not is_valid_target_language("english")
