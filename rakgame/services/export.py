"""
Collection export to CSV, JSON and PDF.

Each export starts with a metadata block (export date, user email, total games
and currency) followed by the games, newest purchase first.
"""

import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence
from xml.sax.saxutils import escape

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from config.environment import Environment
from config.feature_flags import is_feature_enabled
from rakgame.core.error_handler import AuthenticationError, ValidationError, handle_error
from rakgame.core.models import Game

logger = logging.getLogger(__name__)

MIME_TYPES = {
    'csv': 'text/csv',
    'json': 'application/json',
    'pdf': 'application/pdf',
}

CSV_COLUMNS = [
    'Title', 'Platform', 'Type', 'Price', 'Purchase Date',
    'Region', 'Condition', 'Seller', 'Notes', 'Created At'
]

PDF_COLUMNS = ['Title', 'Platform', 'Type', 'Price', 'Date', 'Seller', 'Condition']


@dataclass
class ExportMetadata:
    timestamp: str
    user_email: str
    user_id: str
    total_games: int
    currency: str


@dataclass
class ExportFile:
    content: bytes
    mime_type: str
    filename: str


def generate_filename(fmt: str, prefix: str = 'rakgame-collection', today: Optional[date] = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"{prefix}-{today.isoformat()}.{fmt}"


def generate_csv(games: Sequence[Game], metadata: ExportMetadata) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(['Export Date', metadata.timestamp])
    writer.writerow(['User Email', metadata.user_email])
    writer.writerow(['Total Games', metadata.total_games])
    writer.writerow(['Currency', metadata.currency])
    writer.writerow([])

    df = pd.DataFrame([[
        game.title,
        game.platform,
        game.type,
        game.price,
        str(game.purchase_date),
        game.region or '',
        game.condition or '',
        game.seller.name if game.seller else '',
        game.notes or '',
        game.created_at or ''
    ] for game in games], columns=CSV_COLUMNS)
    df.to_csv(buffer, index=False, lineterminator='\n')
    return buffer.getvalue()


def generate_json(games: Sequence[Game], metadata: ExportMetadata) -> str:
    export_data = {
        'metadata': {
            'exportDate': metadata.timestamp,
            'userEmail': metadata.user_email,
            'userId': metadata.user_id,
            'totalGames': metadata.total_games,
            'currency': metadata.currency,
        },
        'games': [{
            'id': game.id,
            'title': game.title,
            'platform': game.platform,
            'type': game.type,
            'price': game.price,
            'purchaseDate': str(game.purchase_date),
            'region': game.region,
            'condition': game.condition,
            'notes': game.notes,
            'imageUrl': game.image_url,
            'seller': {
                'id': game.seller.id,
                'name': game.seller.name,
                'url': game.seller.url,
                'note': game.seller.note,
            } if game.seller else None,
            'createdAt': game.created_at,
        } for game in games]
    }
    return json.dumps(export_data, indent=2, ensure_ascii=False)


def generate_pdf(games: Sequence[Game], metadata: ExportMetadata) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=14 * mm,
        rightMargin=14 * mm,
        topMargin=14 * mm,
        bottomMargin=14 * mm,
        title="Game Collection Export"
    )
    styles = getSampleStyleSheet()
    total_spending = sum(game.price for game in games)

    story = [
        Paragraph("Game Collection Export", styles['Title']),
        Paragraph(f"Export Date: {metadata.timestamp}", styles['Normal']),
        Paragraph(f"User: {escape(metadata.user_email)}", styles['Normal']),
        Paragraph(f"Total Games: {metadata.total_games}", styles['Normal']),
        Paragraph(f"Currency: {metadata.currency}", styles['Normal']),
        Paragraph(f"Total Spending: {total_spending:.2f} {metadata.currency}", styles['Normal']),
        Spacer(1, 6 * mm),
    ]

    table_data: List[List[str]] = [PDF_COLUMNS]
    for game in games:
        table_data.append([
            game.title,
            game.platform,
            game.type,
            f"{game.price:.2f}",
            str(game.purchase_date),
            game.seller.name if game.seller else '-',
            game.condition or '-',
        ])

    col_widths = [w * mm for w in (50, 25, 20, 20, 25, 30, 20)]
    table = Table(table_data, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor("#424242")),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor("#dee2e6")),
        ('ALIGN', (3, 1), (3, -1), 'RIGHT'),
    ]))
    story.append(table)

    doc.build(story)
    return buffer.getvalue()


class ExportService:
    """Builds downloadable exports of the signed-in user's collection"""

    def __init__(self, games, manager, max_games: Optional[int] = None, filename_prefix: Optional[str] = None):
        settings = Environment.get_export_settings()
        self.games = games
        self.manager = manager
        self.max_games = max_games or settings['max_games']
        self.filename_prefix = filename_prefix or settings['filename_prefix']

    def _metadata(self, games: Sequence[Game]) -> ExportMetadata:
        user = self.manager.get_current_user()
        if not user:
            raise AuthenticationError("Unauthorized", error_code='UNAUTHENTICATED')

        email = user.email
        currency = Environment.get_ui_settings()['default_currency']
        try:
            profile = self.manager.get_user_profile()
            email = profile.email or email
            currency = profile.currency
        except Exception as e:
            logger.warning(f"Using default export settings, profile unavailable: {str(e)}")

        return ExportMetadata(
            timestamp=datetime.now(timezone.utc).isoformat(),
            user_email=email or 'unknown',
            user_id=user.id,
            total_games=len(games),
            currency=currency
        )

    @handle_error
    def export(self, fmt: str) -> ExportFile:
        """
        Export the collection

        Args:
            fmt: 'csv', 'json' or 'pdf'

        Returns:
            ExportFile: content, MIME type and download filename
        """
        if fmt not in MIME_TYPES:
            raise ValidationError("Invalid format. Must be csv, json, or pdf", error_code='INVALID_FORMAT')
        if fmt == 'pdf' and not is_feature_enabled('pdf_export'):
            raise ValidationError("PDF export is not enabled", error_code='FEATURE_DISABLED')

        games = self.games.records[:self.max_games]
        metadata = self._metadata(games)

        if fmt == 'csv':
            content = generate_csv(games, metadata).encode('utf-8')
        elif fmt == 'json':
            content = generate_json(games, metadata).encode('utf-8')
        else:
            content = generate_pdf(games, metadata)

        logger.info(f"Exported {len(games)} game(s) as {fmt}")
        return ExportFile(
            content=content,
            mime_type=MIME_TYPES[fmt],
            filename=generate_filename(fmt, self.filename_prefix)
        )
