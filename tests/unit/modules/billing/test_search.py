from spendlens.modules.billing.domain.search import (
    group_haystack,
    line_haystack,
    matches_all_tokens,
    resolve_account_name,
    tokenize,
)


def test_tokenize_splits_on_whitespace_and_lowercases():
    assert tokenize("  EC2   Prod\tUS-East ") == ("ec2", "prod", "us-east")
    assert tokenize("") == ()
    assert tokenize(None) == ()


def test_matching_is_an_and_of_substrings():
    haystack = "aws AWS ec2 m5.large env=prod"
    assert matches_all_tokens(haystack, ("ec2", "prod"))
    assert matches_all_tokens(haystack, ("m5",))
    assert not matches_all_tokens(haystack, ("ec2", "staging"))
    assert matches_all_tokens(haystack, ())


def test_account_name_prefers_account_id_then_vendor_id(make_line):
    names = {"111": "Payments", "v-9": "Vendor Nine"}
    assert resolve_account_name(make_line(account_id="111", vendor_id="v-9"), names) == "Payments"
    assert resolve_account_name(make_line(account_id="222", vendor_id="v-9"), names) == "Vendor Nine"
    assert resolve_account_name(make_line(account_id="222"), names) == ""
    assert resolve_account_name(make_line(account_id="111"), None) == ""


def test_line_haystack_includes_labels_dates_and_tags(make_line):
    line = make_line(
        detail_name="m5.large",
        invoice_id="INV-7",
        invoice_date="2024-01-31",
        account_id="111",
    )
    haystack = line_haystack(line, {"env": "prod"}, {"111": "Payments"})

    for token in ("aws", "AWS", "ec2", "m5.large", "INV-7", "2024-01-31", "111", "Payments", "env=prod"):
        assert token in haystack


def test_group_haystack_covers_currency_and_account_names(make_line):
    lines = [make_line(account_id="111"), make_line(vendor_id="v-9")]
    haystack = group_haystack("aws", "ec2", "USD", lines, {"111": "Payments", "v-9": "Vendor Nine"})

    assert matches_all_tokens(haystack, tokenize("usd payments vendor"))
    assert "m5" not in haystack
