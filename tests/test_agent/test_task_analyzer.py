from coworkbot.task_analyzer import TaskAnalyzer


def test_simple_question_needs_no_todo():
    result = TaskAnalyzer().analyze("What is the capital of France?")

    assert result.requires_todo is False
    assert result.complexity == "simple"
    assert result.estimated_steps == 1


def test_multi_step_build_needs_todo():
    result = TaskAnalyzer().analyze("Build a REST API, write tests, and deploy it")

    assert result.requires_todo is True
    assert result.complexity == "complex"
    assert result.estimated_steps >= 3
    assert result.reason.startswith("Complex multi-step workflow")


def test_single_refactor_is_moderate():
    result = TaskAnalyzer().analyze("Refactor the parser")

    assert result.score == 2.5
    assert result.complexity == "moderate"
    assert result.requires_todo is True
    assert result.estimated_steps == 2


def test_plain_read_is_simple():
    result = TaskAnalyzer().analyze("Read config.yaml")

    assert result.complexity == "simple"
    assert result.requires_todo is False


def test_indicators_count_every_match():
    indicators = TaskAnalyzer.check_indicators("Deploy staging, then deploy production")
    by_type = {indicator.type: indicator for indicator in indicators}

    assert by_type["deployment"].count == 2
    assert by_type["deployment"].weight == 2


def test_empty_message_scores_zero():
    result = TaskAnalyzer().analyze("")

    assert result.score == 0
    assert result.requires_todo is False


def test_informational_query_detection():
    assert TaskAnalyzer.is_informational_query("What is a closure?") is True
    assert TaskAnalyzer.is_informational_query("How do I create a file?") is False
    assert TaskAnalyzer.is_informational_query("Rename the module") is False
