from integrations.description import build_description, parse_description


def test_build_description_sections():
    text = build_description("Fix login", "Users can log in", "- works on mobile\n- works on web")
    assert text == (
        "## Objective\nUsers can log in\n\n"
        "## Acceptance Criteria\n- works on mobile\n- works on web"
    )


def test_objective_falls_back_to_title():
    assert build_description("Fix login", "") == "## Objective\nFix login"
    assert build_description("", "") == "## Objective\nObjective pending"


def test_title_section_for_new_tasks():
    text = build_description("Fix login", "Do it", include_title=True)
    assert text.startswith("## Title\nFix login\n\n## Objective\nDo it")


def test_parse_round_trip():
    parsed = parse_description(build_description("T", "The goal", "- a\n- b"))
    assert parsed.objective == "The goal"
    assert parsed.acceptance_criteria == "- a\n- b"


def test_parse_ignores_title_section():
    parsed = parse_description(build_description("T", "Goal", "- a", include_title=True))
    assert parsed.objective == "Goal"
    assert parsed.acceptance_criteria == "- a"


def test_parse_is_case_insensitive():
    parsed = parse_description("##objective\nGoal\n## acceptance criteria\n- a")
    assert parsed.objective == "Goal"
    assert parsed.acceptance_criteria == "- a"


def test_parse_free_text_degrades_to_objective():
    parsed = parse_description("Just some notes\nwithout headings")
    assert parsed.objective == "Just some notes\nwithout headings"
    assert parsed.acceptance_criteria == ""


def test_parse_text_before_acceptance_is_objective():
    parsed = parse_description("Intro text\n## Acceptance Criteria\n- a")
    assert parsed.objective == "Intro text"
    assert parsed.acceptance_criteria == "- a"


def test_parse_empty():
    parsed = parse_description(None)
    assert (parsed.objective, parsed.acceptance_criteria, parsed.raw) == ("", "", "")
