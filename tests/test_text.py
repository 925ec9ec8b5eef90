"""Tests for marker cleaning, sentence casing and item extraction."""

from boothill_gm.text import (
    clean_character_name,
    clean_combat_log_entry,
    clean_location_text,
    clean_metadata_markers,
    extract_item_updates,
    to_sentence_case,
)


# ── clean_metadata_markers ───────────────────────────────────


def test_removes_inline_marker_with_json_payload():
    text = 'Player SUGGESTED_ACTIONS: [{"text": "action"}] hits enemy'
    assert clean_metadata_markers(text) == "Player hits enemy"


def test_removes_brackets_inside_json_strings():
    text = 'You wait. SUGGESTED_ACTIONS: [{"text": "Say [nothing]", "type": "basic"}]'
    assert clean_metadata_markers(text) == "You wait."


def test_removes_story_point_object():
    text = 'The stage rolls in.\nSTORY_POINT: {"type": "revelation", "title": "Gold"}\nDust everywhere.'
    assert clean_metadata_markers(text) == "The stage rolls in.\n\nDust everywhere."


def test_unbracketed_marker_runs_to_end_of_line():
    text = "You pocket the coin.\nACQUIRED_ITEMS: Silver Dollar\nThe bartender nods."
    assert clean_metadata_markers(text) == "You pocket the coin.\n\nThe bartender nods."


def test_empty_input():
    assert clean_metadata_markers("") == ""
    assert clean_metadata_markers("   ") == ""
    assert clean_metadata_markers(None) == ""


# ── clean_combat_log_entry ───────────────────────────────────


def test_combat_preserves_roll():
    text = "Player hits enemy [Roll: 15/20] SUGGESTED_ACTIONS: []"
    assert clean_combat_log_entry(text) == "Player hits enemy [Roll: 15/20]"


def test_combat_removes_long_json_blocks():
    text = (
        'Prospector ACQUIRED_ITEMS: [] REMOVED_ITEMS: [] SUGGESTED_ACTIONS: '
        '[{"text": "Throw a punch", "type": "combat"}, '
        '{"text": "Search the prospector\'s pockets", "type": "interaction"}] '
        "grapples with Weak Hold (Roll: 3) dealing 1 damage to leftArm"
    )
    assert clean_combat_log_entry(text) == (
        "Prospector grapples with Weak Hold (Roll: 3) dealing 1 damage to leftArm"
    )


def test_combat_removes_consecutive_multiline_blocks():
    text = (
        "Prospector\n\n"
        "ACQUIRED_ITEMS: []\n"
        "REMOVED_ITEMS: []\n"
        'SUGGESTED_ACTIONS: [{"text": "Throw a punch"}]\n'
        "ACQUIRED_ITEMS: []\n"
        "REMOVED_ITEMS: [] punches with Miss (Roll: 2) dealing 0 damage to head"
    )
    assert clean_combat_log_entry(text) == (
        "Prospector punches with Miss (Roll: 2) dealing 0 damage to head"
    )


def test_combat_markers_between_words():
    text = 'Player SUGGESTED_ACTIONS: [{"text": "Attack", "type": "combat"}] attacks ACQUIRED_ITEMS: [] with sword'
    assert clean_combat_log_entry(text) == "Player attacks with sword"


# ── to_sentence_case ─────────────────────────────────────────


def test_sentence_case_preserves_proper_nouns():
    assert to_sentence_case("John walks to The Saloon") == "John walks to The Saloon"


def test_sentence_case_capitalises_sentence_starts():
    assert to_sentence_case("the door creaks. you step in! who's there?") == (
        "The door creaks. You step in! Who's there?"
    )


# ── extract_item_updates ─────────────────────────────────────


def test_markers_take_priority():
    text = """
        ACQUIRED_ITEMS: [Revolver]
        GM: You pick up the health tonic.
    """
    assert extract_item_updates(text) == {"acquired": ["Revolver"], "removed": []}


def test_marker_lists():
    updates = extract_item_updates("ACQUIRED_ITEMS: [Gun, Knife] REMOVED_ITEMS: [Bullets]")
    assert updates == {"acquired": ["Gun", "Knife"], "removed": ["Bullets"]}


def test_narrative_mentions_are_not_acquisitions():
    updates = extract_item_updates("The presence of your trusty six-shooter reassures you.")
    assert updates == {"acquired": [], "removed": []}


def test_compound_item_from_take_command():
    updates = extract_item_updates("\n    Player: Take the liquid in the spittoon\n")
    assert updates["acquired"] == ["liquid in the spittoon"]


def test_use_command_removes_item():
    updates = extract_item_updates("Player: Use your whiskey bottle")
    assert updates == {"acquired": [], "removed": ["whiskey bottle"]}


def test_gm_narration_verbs():
    text = """
        GM: You pick up the liquid into your mug.
        GM: You uncork a whiskey bottle.
        GM: You lose the bottle.
    """
    updates = extract_item_updates(text)
    assert updates["acquired"] == ["liquid", "whiskey bottle"]
    assert updates["removed"] == ["bottle"]


def test_commands_with_and_without_article():
    text = "Player: Take liquid\nPlayer: Take the bottle"
    assert extract_item_updates(text) == {"acquired": ["liquid", "bottle"], "removed": []}


def test_sequence_keeps_item_case():
    text = "Player: Take the liquid in the spittoon\nPlayer: Use the Whiskey bottle"
    updates = extract_item_updates(text)
    assert updates["acquired"] == ["liquid in the spittoon"]
    assert updates["removed"] == ["Whiskey bottle"]


def test_duplicates_collapsed():
    text = "Player: Take the rope\nGM: You take the rope."
    assert extract_item_updates(text)["acquired"] == ["rope"]


# ── location and character names ────────────────────────────


def test_clean_location_text():
    assert clean_location_text("LOCATION: Dusty Gulch. The wind howls.") == "Dusty Gulch"
    assert clean_location_text("Boot Hill Cemetery Jake was here before you") == "Boot Hill Cemetery"
    assert clean_location_text(None) == ""


def test_clean_character_name():
    assert clean_character_name("The Prospector") == "Prospector"
    assert clean_character_name("Sheriff Cole (wounded)") == "Sheriff Cole"
    assert clean_character_name("Billy draws his gun") == "Billy"
    assert clean_character_name("Doc Holliday, the gambler") == "Doc Holliday"
    assert clean_character_name("Jesse\nimportant: do not kill") == "Jesse"
    assert clean_character_name("") == ""
