import dns.exception
import dns.resolver
import dns.reversename

from mailhost_installer.lib.dns_check import DnsChecker

IP = "203.0.113.10"
REV = dns.reversename.from_address(IP).to_text()


class Name:
    def __init__(self, text):
        self.text = text

    def to_text(self):
        return self.text


class Mx:
    def __init__(self, preference, exchange):
        self.preference = preference
        self.exchange = Name(exchange)


class Txt:
    def __init__(self, *chunks):
        self.strings = [c.encode() for c in chunks]


class FakeResolver:
    def __init__(self, records, timeout_for=()):
        self.records = records
        self.timeout_for = set(timeout_for)
        self.queries = []

    def resolve(self, name, rtype):
        self.queries.append((name, rtype))
        if (name, rtype) in self.timeout_for:
            raise dns.exception.Timeout()
        try:
            return self.records[(name, rtype)]
        except KeyError:
            raise dns.resolver.NXDOMAIN()


GOOD = {
    ("mail.example.com", "A"): [Name(IP)],
    (REV, "PTR"): [Name("mail.example.com.")],
    ("example.com", "MX"): [Mx(10, "mail.example.com.")],
    ("example.com", "TXT"): [Txt("google-site-verification=x"), Txt("v=spf1 mx a -all")],
    ("mail._domainkey.example.com", "TXT"): [Txt("v=DKIM1; k=rsa; ", "p=MIIBIjAN")],
    ("_dmarc.example.com", "TXT"): [Txt("v=DMARC1; p=quarantine")],
}


def _check(records, **kw):
    return DnsChecker(FakeResolver(records, **kw)).validate_domain(
        domain="example.com", hostname="mail.example.com", server_ip=IP
    )


def test_all_records_present():
    results = _check(GOOD)
    assert [r.name for r in results] == ["A", "PTR", "MX", "SPF", "DKIM", "DMARC"]
    assert all(r.ok for r in results), results
    assert results[2].detail == "10 mail.example.com"


def test_nothing_published_fails_without_raising():
    results = _check({})
    assert not any(r.ok for r in results)
    hard = [r.name for r in results if r.failed_hard]
    assert hard == ["A", "MX", "SPF", "DKIM", "DMARC"]
    spf = results[3]
    assert "v=spf1 mx a -all" in spf.detail


def test_timeouts_are_failures():
    results = _check(GOOD, timeout_for=[("example.com", "MX")])
    mx = results[2]
    assert not mx.ok and mx.failed_hard


def test_mismatches():
    records = dict(GOOD)
    records[("mail.example.com", "A")] = [Name("198.51.100.7")]
    records[(REV, "PTR")] = [Name("vps-123.hoster.net.")]
    records[("example.com", "MX")] = [Mx(10, "mx.other.net.")]
    a, ptr, mx, *_ = _check(records)
    assert not a.ok and "expected: 203.0.113.10" in a.detail
    assert not ptr.ok and not ptr.failed_hard
    assert not mx.ok and "mx.other.net" in mx.detail


def test_duplicate_spf_and_revoked_dkim():
    records = dict(GOOD)
    records[("example.com", "TXT")] = [Txt("v=spf1 mx -all"), Txt("v=spf1 a -all")]
    records[("mail._domainkey.example.com", "TXT")] = [Txt("v=DKIM1; p=")]
    checker = DnsChecker(FakeResolver(records))
    assert not checker.check_spf("example.com").ok
    dkim = checker.check_dkim("example.com", "mail")
    assert not dkim.ok and "revoked" in dkim.detail


def test_ptr_without_ip_is_warning():
    r = DnsChecker(FakeResolver({})).check_ptr(None, "mail.example.com")
    assert not r.ok
    assert r.level == "warning"
    assert not r.failed_hard


def test_custom_selector_is_queried():
    resolver = FakeResolver(GOOD)
    DnsChecker(resolver).check_dkim("example.com", "s2024")
    assert ("s2024._domainkey.example.com", "TXT") in resolver.queries
