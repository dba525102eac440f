from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import dns.exception
import dns.resolver
import dns.reversename

from .dkim import record_name
from .dns_records import dmarc_value, spf_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str
    level: str = "error"

    @property
    def failed_hard(self) -> bool:
        return (not self.ok) and self.level == "error"


def _norm(host: str) -> str:
    return host.rstrip(".").lower()


def _txt_strings(answer: Any) -> str:
    parts = getattr(answer, "strings", None)
    if parts is None:
        return str(answer).strip('"')
    return "".join(p.decode("utf-8", errors="ignore") if isinstance(p, bytes) else str(p) for p in parts)


class DnsChecker:
    """Check published records against what the mail host expects.

    Lookups go through ``resolver.resolve(name, rtype)``; any DNS failure
    (NXDOMAIN, no answer, timeout) becomes a failed result.
    """

    def __init__(self, resolver: Optional[Any] = None, *, lifetime: float = 5.0):
        if resolver is None:
            resolver = dns.resolver.Resolver()
            resolver.lifetime = lifetime
        self.resolver = resolver

    def _lookup(self, name: str, rtype: str) -> List[Any]:
        try:
            return list(self.resolver.resolve(name, rtype))
        except dns.exception.DNSException as e:
            logger.info("DNS %s %s: %s", rtype, name, e.__class__.__name__)
            return []

    def _txt(self, name: str) -> List[str]:
        return [_txt_strings(a) for a in self._lookup(name, "TXT")]

    def check_a(self, hostname: str, expected_ip: Optional[str]) -> CheckResult:
        found = [a.to_text() for a in self._lookup(hostname, "A")]
        if not found:
            return CheckResult("A", False, f"A record not found for {hostname}")
        if expected_ip and expected_ip not in found:
            return CheckResult("A", False, f"A record mismatch: {hostname} -> {', '.join(found)} (expected: {expected_ip})")
        return CheckResult("A", True, f"{hostname} -> {', '.join(found)}")

    def check_ptr(self, ip: Optional[str], hostname: str) -> CheckResult:
        if not ip:
            return CheckResult("PTR", False, "Server IP unknown; PTR not checked", level="warning")
        rev = dns.reversename.from_address(ip).to_text()
        found = [_norm(a.to_text()) for a in self._lookup(rev, "PTR")]
        if not found:
            return CheckResult("PTR", False, f"PTR record not found for {ip}; mail may be marked as spam", level="warning")
        if _norm(hostname) not in found:
            return CheckResult(
                "PTR", False, f"PTR mismatch: {ip} -> {', '.join(found)} (expected: {hostname})", level="warning"
            )
        return CheckResult("PTR", True, f"{ip} -> {hostname}", level="warning")

    def check_mx(self, domain: str, hostname: str) -> CheckResult:
        answers = self._lookup(domain, "MX")
        if not answers:
            return CheckResult("MX", False, f"MX record not found for {domain}; add: {domain} MX 10 {hostname}")
        targets = [(getattr(a, "preference", None), _norm(a.exchange.to_text())) for a in answers]
        shown = ", ".join(f"{p} {t}" for p, t in targets)
        if _norm(hostname) not in [t for _, t in targets]:
            return CheckResult("MX", False, f"MX for {domain} does not point to {hostname} ({shown})")
        return CheckResult("MX", True, shown)

    def check_spf(self, domain: str) -> CheckResult:
        spf = [t for t in self._txt(domain) if t.lower().startswith("v=spf1")]
        if not spf:
            return CheckResult("SPF", False, f'SPF record not found for {domain}; consider: "{spf_value()}"')
        if len(spf) > 1:
            return CheckResult("SPF", False, f"Multiple SPF records for {domain}: {spf}")
        return CheckResult("SPF", True, spf[0])

    def check_dkim(self, domain: str, selector: str = "mail") -> CheckResult:
        name = record_name(domain, selector)
        found = [t for t in self._txt(name) if t.startswith("v=DKIM1") or "p=" in t]
        if not found:
            return CheckResult("DKIM", False, f"DKIM record not found at {name}")
        if "p=" not in found[0] or found[0].rstrip().endswith("p="):
            return CheckResult("DKIM", False, f"DKIM record at {name} has an empty key (revoked)")
        return CheckResult("DKIM", True, f"{name} published")

    def check_dmarc(self, domain: str) -> CheckResult:
        name = f"_dmarc.{domain}"
        found = [t for t in self._txt(name) if t.startswith("v=DMARC1")]
        if not found:
            return CheckResult("DMARC", False, f'DMARC record not found at {name}; consider: "{dmarc_value(domain)}"')
        return CheckResult("DMARC", True, found[0])

    def validate_domain(
        self,
        *,
        domain: str,
        hostname: str,
        server_ip: Optional[str],
        dkim_selector: str = "mail",
    ) -> List[CheckResult]:
        return [
            self.check_a(hostname, server_ip),
            self.check_ptr(server_ip, hostname),
            self.check_mx(domain, hostname),
            self.check_spf(domain),
            self.check_dkim(domain, dkim_selector),
            self.check_dmarc(domain),
        ]
