"""
Rendu HTML du rapport de remise de document (affichage / téléchargement).
Artefact opaque : jamais relu par le serveur.
"""
from datetime import datetime
from html import escape
from typing import Any, Optional

from config import settings
from core.utils import utcnow
from database import DocumentStore
from services.anonymous_code_service import mask_real_name
from services.audit_service import build_chain_of_custody
from services.document_service import require_document_mission
from services.security_level_service import get_security_level_display

EVENT_LABELS = {
    "created":          ("📝", "Mission Created"),
    "assigned":         ("👤", "Driver Assigned"),
    "driver_departed":  ("🚗", "Driver En Route"),
    "driver_arrived":   ("📍", "Driver Arrived"),
    "pickup_confirmed": ("🔑", "Pickup Confirmed"),
    "started":          ("📦", "Document Picked Up"),
    "completed":        ("✅", "Document Delivered"),
    "cancelled":        ("❌", "Mission Cancelled"),
    "failed":           ("⚠️", "Mission Failed"),
    "document_scanned": ("📷", "Document Scanned"),
    "anomaly_detected": ("🚨", "Anomaly Detected"),
}


def _fmt(value: Any) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return escape(value)
    return value.strftime("%d/%m/%Y %H:%M UTC")


def _custody_html(chain: list[dict]) -> str:
    rows = []
    for entry in chain:
        icon, label = EVENT_LABELS.get(entry["event"], ("•", entry["event"]))
        location = entry.get("location")
        where = f"{location['lat']:.5f}, {location['lng']:.5f}" if location else ""
        status = "✔ verified" if entry["verified"] else "✘ checksum mismatch"
        rows.append(f"""
          <div class="custody-event">
            <div class="custody-icon">{icon}</div>
            <div class="custody-details">
              <div class="custody-title">{escape(label)}</div>
              <div class="custody-time">{_fmt(entry["timestamp"])} · {escape(str(entry["performed_by_role"]))}</div>
              <div class="custody-location">{where}</div>
              <div class="custody-checksum">{escape(entry["integrity_checksum"])} · {status}</div>
            </div>
          </div>""")
    return "".join(rows) or "<p>No events recorded.</p>"


def render_report_html(mission: dict, chain: list[dict], generated_at: Optional[datetime] = None) -> str:
    generated_at = generated_at or utcnow()
    level = mission["security_level"]
    details = mission.get("document_details") or {}
    app_name = escape(settings.APP_NAME)
    code = escape(mission["mission_code"])

    document_section = ""
    if details:
        document_section = f"""
      <div class="section">
        <div class="section-title">📄 Document Details</div>
        <div class="info-grid">
          <div class="info-item"><div class="info-label">Type</div><div class="info-value">{escape(str(details.get("document_type", "")).upper())}</div></div>
          <div class="info-item"><div class="info-label">Sealed Package</div><div class="info-value">{"Yes" if details.get("sealed_package") else "No"}</div></div>
          <div class="info-item"><div class="info-label">Recipient</div><div class="info-value">{escape(mask_real_name(details.get("recipient_name")))}</div></div>
          <div class="info-item"><div class="info-label">Recipient Code</div><div class="info-value">{escape(details.get("recipient_code") or "N/A")}</div></div>
        </div>
      </div>"""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{app_name} - Document Delivery Report {code}</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{ font-family: -apple-system, 'Segoe UI', Arial, sans-serif; line-height: 1.6; color: #1a1a2e; background: #f5f5f7; padding: 40px 20px; }}
    .report-container {{ max-width: 800px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden; }}
    .header {{ background: #1a1a2e; color: white; padding: 40px; text-align: center; }}
    .header h1 {{ font-size: 36px; letter-spacing: 4px; }}
    .content {{ padding: 40px; }}
    .section {{ margin-bottom: 32px; padding-bottom: 32px; border-bottom: 2px solid #f0f0f0; }}
    .section-title {{ font-size: 20px; font-weight: 600; margin-bottom: 16px; }}
    .info-grid {{ display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }}
    .info-label {{ font-size: 12px; text-transform: uppercase; color: #666; }}
    .info-value {{ font-size: 16px; font-weight: 600; }}
    .security-badge {{ padding: 4px 12px; border-radius: 12px; font-size: 12px; font-weight: 700; }}
    .security-standard {{ background: #e8f5e9; color: #2e7d32; }}
    .security-discreet {{ background: #e3f2fd; color: #1565c0; }}
    .security-confidential {{ background: #fff3e0; color: #e65100; }}
    .security-critical {{ background: #fce4ec; color: #c2185b; }}
    .custody-event {{ display: flex; gap: 16px; padding: 12px 0; }}
    .custody-checksum {{ font-family: monospace; font-size: 12px; color: #888; }}
    .legal-notice {{ background: #f8f9fa; border-left: 4px solid #1a1a2e; padding: 20px; font-size: 13px; }}
    .footer {{ text-align: center; padding: 24px; font-size: 12px; color: #888; }}
  </style>
</head>
<body>
  <div class="report-container">
    <div class="header">
      <h1>{app_name}</h1>
      <div class="tagline">Secure Document Delivery Report</div>
      <div class="report-badge"><strong>Mission {code}</strong></div>
    </div>
    <div class="content">
      <div class="section">
        <div class="section-title">📋 Mission Information</div>
        <div class="info-grid">
          <div class="info-item"><div class="info-label">Mission Code</div><div class="info-value">{code}</div></div>
          <div class="info-item"><div class="info-label">Security Level</div><div class="info-value"><span class="security-badge security-{escape(level)}">{escape(get_security_level_display(level))}</span></div></div>
          <div class="info-item"><div class="info-label">Client Code</div><div class="info-value">{escape(mission["client_code"])}</div></div>
          <div class="info-item"><div class="info-label">Driver Code</div><div class="info-value">{escape(mission.get("driver_code") or "N/A")}</div></div>
          <div class="info-item"><div class="info-label">Scheduled</div><div class="info-value">{_fmt(mission["scheduled_for"])}</div></div>
          <div class="info-item"><div class="info-label">Completed</div><div class="info-value">{_fmt(mission.get("mission_completed_at"))}</div></div>
        </div>
      </div>
{document_section}
      <div class="section">
        <div class="section-title">🗺️ Route Information</div>
        <div class="location-card">
          <div class="location-type">📍 Pickup Location</div>
          <div class="location-address">{escape(mission["pickup"]["address"])}</div>
          <div class="location-time">{_fmt(mission.get("mission_started_at") or mission["pickup"]["timestamp"])}</div>
        </div>
        <div class="location-card">
          <div class="location-type">🎯 Dropoff Location</div>
          <div class="location-address">{escape(mission["dropoff"]["address"])}</div>
          <div class="location-time">{_fmt(mission.get("mission_completed_at") or mission["dropoff"]["timestamp"])}</div>
        </div>
      </div>

      <div class="section">
        <div class="section-title">🔗 Chain of Custody</div>
        <div class="chain-of-custody">{_custody_html(chain)}
        </div>
      </div>

      <div class="legal-notice">
        <p><strong>LEGAL VALUE REPORT</strong></p>
        <p>This document certifies the secure delivery of documents through the {app_name} platform. Every event above is stored in an append-only audit log; each entry carries an integrity checksum linked to the previous entry.</p>
        <p>The checksums detect accidental alteration of the log. Document scans and GPS coordinates are retained and available for legal proceedings if required.</p>
        <p><strong>Report Generated:</strong> {_fmt(generated_at)}</p>
        <p><strong>Mission ID:</strong> {escape(mission["mission_id"])}</p>
      </div>
    </div>
    <div class="footer">
      <p>{app_name} - Secure Mobility Infrastructure</p>
      <p>© {generated_at.year} {app_name}. All rights reserved.</p>
    </div>
  </div>
</body>
</html>"""


async def generate_report_html(store: DocumentStore, mission_id: str) -> tuple[dict, str]:
    """Retourne (mission, html) pour une mission document."""
    mission = await require_document_mission(store, mission_id)
    chain = await build_chain_of_custody(store, mission_id)
    return mission, render_report_html(mission, chain)


def report_filename(mission: dict) -> str:
    app_slug = settings.APP_NAME.replace(" ", "_")
    return f"{app_slug}_{mission['mission_code']}_Report.html"
