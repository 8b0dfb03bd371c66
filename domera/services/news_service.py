from domera.errors import NotFoundError, ValidationError
from domera.extensions import db
from domera.models import NewsItem


def _require_text(value, label):
    value = (value or '').strip()
    if not value:
        raise ValidationError(f'{label} ist erforderlich')
    return value


def create_news(company_id, title, body, building_id=None):
    item = NewsItem(
        company_id=company_id,
        building_id=building_id,
        title=_require_text(title, 'Titel'),
        body=_require_text(body, 'Text'),
    )
    db.session.add(item)
    db.session.commit()
    return item


def get_news(news_id):
    if not news_id:
        return None
    return db.session.get(NewsItem, news_id)


def require_news(news_id):
    item = get_news(news_id)
    if not item:
        raise NotFoundError('Neuigkeit nicht gefunden')
    return item


def get_news_by_company(company_id):
    return NewsItem.query.filter_by(company_id=company_id).order_by(NewsItem.created_at.desc()).all()


def update_news(news_id, data):
    item = require_news(news_id)
    if 'title' in data:
        item.title = _require_text(data['title'], 'Titel')
    if 'body' in data:
        item.body = _require_text(data['body'], 'Text')
    if 'building_id' in data:
        item.building_id = data['building_id']
    db.session.commit()
    return item


def delete_news(news_id):
    item = require_news(news_id)
    db.session.delete(item)
    db.session.commit()
