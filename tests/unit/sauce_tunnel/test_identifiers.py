import pytest

from sauce_tunnel.identifiers import generate_tunnel_identifier, tunnel_identifier_from_options


pytestmark = pytest.mark.unit_tunnel


def test_generated_identifier_has_job_prefix_and_is_unique():
    first = generate_tunnel_identifier("my job/branch")
    second = generate_tunnel_identifier("my job/branch")
    assert first.startswith("my_job_branch-")
    assert first != second


@pytest.mark.parametrize(
    "options, expected",
    [
        ("--tunnel-identifier abc -v", "abc"),
        ("-v -i xyz", "xyz"),
        ("--tunnel-identifier=eq", "eq"),
        ("-v", "default"),
        ("", "default"),
    ],
)
def test_identifier_from_options(options, expected):
    assert tunnel_identifier_from_options(options) == expected
