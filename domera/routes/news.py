from flask import Blueprint, jsonify, request

from domera.errors import PermissionDenied
from domera.routes.main import (
    current_user,
    ensure_company_access,
    login_required,
    management_required,
    user_company_ids,
)
from domera.services import building_service, news_service

news_bp = Blueprint('news', __name__)


def _owned_item(news_id):
    item = news_service.require_news(news_id)
    ensure_company_access(current_user(), item.company_id)
    return item


def _check_building(building_id):
    if building_id:
        building = building_service.require_building(building_id)
        ensure_company_access(current_user(), building.company_id)


@news_bp.route('', methods=['GET'])
@login_required
def list_news():
    user = current_user()
    items = []
    for company_id in user_company_ids(user):
        items.extend(news_service.get_news_by_company(company_id))

    # Bewohner sehen allgemeine und gebäudebezogene Meldungen ihres Hauses
    if not user.company_id and user.apartment_id:
        from domera.services.apartment_service import get_apartment
        apartment = get_apartment(user.apartment_id)
        building_id = apartment.building_id if apartment else None
        items = [i for i in items if not i.building_id or i.building_id == building_id]
    return jsonify([i.to_dict() for i in items])


@news_bp.route('', methods=['POST'])
@management_required
def create_news():
    data = request.get_json(silent=True) or {}
    _check_building(data.get('building_id'))
    item = news_service.create_news(
        current_user().company_id,
        data.get('title'),
        data.get('body'),
        building_id=data.get('building_id'),
    )
    return jsonify(item.to_dict()), 201


@news_bp.route('/<news_id>', methods=['GET'])
@login_required
def get_news(news_id):
    item = news_service.require_news(news_id)
    if item.company_id not in user_company_ids(current_user()):
        raise PermissionDenied('Kein Zugriff auf diese Neuigkeit')
    return jsonify(item.to_dict())


@news_bp.route('/<news_id>', methods=['PATCH'])
@management_required
def update_news(news_id):
    _owned_item(news_id)
    data = request.get_json(silent=True) or {}
    if 'building_id' in data:
        _check_building(data['building_id'])
    item = news_service.update_news(news_id, data)
    return jsonify(item.to_dict())


@news_bp.route('/<news_id>', methods=['DELETE'])
@management_required
def delete_news(news_id):
    _owned_item(news_id)
    news_service.delete_news(news_id)
    return jsonify({'message': 'Neuigkeit gelöscht'})
