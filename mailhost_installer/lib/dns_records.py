from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .dkim import record_name
from .firewall import MAIL_PORTS


@dataclass(frozen=True)
class DnsRecord:
    rtype: str
    name: str
    value: str
    priority: Optional[int] = None

    def describe(self) -> str:
        if self.rtype == "MX":
            return f"- MX: {self.name} -> {self.value} (priority {self.priority})"
        if self.rtype == "TXT":
            return f'- TXT for {self.name}: "{self.value}"'
        return f"- {self.rtype}: {self.name} -> {self.value}"

    def as_dict(self) -> dict:
        d = {"type": self.rtype, "name": self.name, "value": self.value}
        if self.priority is not None:
            d["priority"] = self.priority
        return d


def spf_value() -> str:
    return "v=spf1 mx a -all"


def dmarc_value(domain: str, policy: str = "quarantine") -> str:
    return f"v=DMARC1; p={policy}; rua=mailto:dmarc@{domain}; ruf=mailto:dmarc@{domain}; fo=1"


def recommended_records(
    *,
    domain: str,
    hostname: str,
    ipv4: Optional[str],
    ipv6: Optional[str] = None,
    dkim_selector: str = "mail",
    dkim_value: Optional[str] = None,
    dmarc_policy: str = "quarantine",
) -> List[DnsRecord]:
    records: List[DnsRecord] = []
    if ipv4:
        records.append(DnsRecord("A", hostname, ipv4))
    if ipv6:
        records.append(DnsRecord("AAAA", hostname, ipv6))
    records.append(DnsRecord("MX", domain, hostname, priority=10))
    records.append(DnsRecord("TXT", domain, spf_value()))
    records.append(DnsRecord("TXT", f"_dmarc.{domain}", dmarc_value(domain, dmarc_policy)))
    if dkim_value:
        records.append(DnsRecord("TXT", record_name(domain, dkim_selector), dkim_value))
    return records


def render_report(
    *,
    domain: str,
    hostname: str,
    records: List[DnsRecord],
    dkim_selector: str = "mail",
    postmaster: Optional[str] = None,
    postmaster_password: Optional[str] = None,
    cert_source: Optional[str] = None,
) -> str:
    rule = "=" * 60
    out = [
        "",
        rule,
        "Mail server setup complete.",
        "",
        f"Host:   {hostname}",
        f"Domain: {domain}",
    ]
    if cert_source:
        out.append(f"TLS:    {cert_source}")
    if postmaster:
        out += [
            "",
            "Postmaster seeded account:",
            f"  Email:    {postmaster}",
            f"  Password: {postmaster_password or '(unchanged, already existed)'}",
        ]
    out += [
        "",
        "Open these ports in your security group/firewall if needed:",
        "  " + ", ".join(str(p) for p in MAIL_PORTS if p != 22),
        "",
        "Add the following DNS records at your DNS provider:",
        "",
    ]
    out += [r.describe() for r in records]
    if not any(r.name == record_name(domain, dkim_selector) for r in records):
        out.append(f"- TXT (DKIM) for {record_name(domain, dkim_selector)}: key not found under /etc/opendkim/keys/{domain}/")
    out += [
        "- PTR: ask your hosting provider to point the server IP back to " + hostname,
        "",
        "Manage users:",
        "  sudo mailhost-users add user@domain",
        "  sudo mailhost-users del user@domain [--keep-mail]",
        "  sudo mailhost-users list",
        "",
        "Test:",
        f"  mailhost-check dns --domain {domain} --hostname {hostname}",
        f"  mailhost-check smtp --host {hostname} --port 587 --user {postmaster or 'user@' + domain}",
        f"  Incoming IMAP: host={hostname}, port=993, SSL/TLS, normal password",
        f"  Outgoing SMTP: host={hostname}, port=587, STARTTLS, normal password",
        "",
        "Logs:",
        "  journalctl -u postfix -f",
        "  journalctl -u dovecot -f",
        "  journalctl -u opendkim -u opendmarc -f",
        rule,
        "",
    ]
    return "\n".join(out)
