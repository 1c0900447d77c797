import pytest

from quizroom.domain.activities.progress import percent_complete


@pytest.mark.parametrize(
	"answered,total,expected",
	[
		(1, 8, 13),
		(3, 8, 38),
		(5, 8, 63),
		(1, 3, 33),
		(2, 3, 67),
		(0, 4, 0),
		(4, 4, 100),
		(0, 0, 0),
	],
)
def test_percent_rounds_halves_up(answered, total, expected):
	assert percent_complete(answered, total) == expected
