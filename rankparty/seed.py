"""Default content for fresh databases: demo users and the topic catalogue."""
from rankparty import db
from rankparty.models import Topic, TopicItem, User

DEFAULT_TOPICS = {
    'Comfort Food': ['Pizza', 'Mac and Cheese', 'Ramen', 'Tacos', 'Ice Cream'],
    'Movie Genres': ['Comedy', 'Horror', 'Action', 'Romance', 'Documentary'],
    'Best Smells': ['Fresh Bread', 'Rain', 'Coffee', 'Cut Grass', 'Campfire'],
    'Childhood Games': ['Hide and Seek', 'Tag', 'Hopscotch', 'Red Rover', 'Simon Says'],
    'Dance Styles': ['Salsa', 'Hip Hop', 'Ballet', 'Tango', 'Breakdance'],
    'Road Trip Snack': ['Chips', 'Beef Jerky', 'Gummy Bears', 'Trail Mix', 'Pretzels'],
    'Holidays': ['New Year', 'Halloween', 'Thanksgiving', 'Christmas', 'Independence Day'],
    'Winter Fun Activities': ['Skiing', 'Snowball Fight', 'Ice Skating', 'Sledding', 'Hot Cocoa'],
    'F1 Teams': ['Ferrari', 'Mercedes', 'Red Bull', 'McLaren', 'Aston Martin'],
}


def seed_users(usernames, password):
    for username in usernames:
        if User.query.filter_by(username=username).first():
            continue
        user = User(username=username)
        user.set_password(password)
        db.session.add(user)
    db.session.commit()


def seed_topics(catalogue=None):
    """Insert topics that are not present yet; returns how many were created."""
    catalogue = catalogue or DEFAULT_TOPICS
    created = 0
    for name, items in catalogue.items():
        if Topic.query.filter_by(name=name).first():
            continue
        topic = Topic(name=name, is_editable=False)
        for position, item_name in enumerate(items, start=1):
            topic.items.append(TopicItem(name=item_name, position=position))
        db.session.add(topic)
        created += 1
    db.session.commit()
    return created
