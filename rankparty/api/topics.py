from flask import Blueprint, jsonify
from flask_login import login_required

from rankparty import db
from rankparty.errors import NotFoundError
from rankparty.models import Topic

topics = Blueprint('topics', __name__)


@topics.route('/', methods=['GET'])
@login_required
def list_topics():
    """Topic catalogue for the VIP's topic selection screen."""
    rows = Topic.query.order_by(Topic.name).all()
    return jsonify([t.to_dict() for t in rows])


@topics.route('/<int:topic_id>', methods=['GET'])
@login_required
def get_topic(topic_id):
    topic = db.session.get(Topic, topic_id)
    if not topic:
        raise NotFoundError('topic', topic_id)
    return jsonify(topic.to_dict(include_items=True))
