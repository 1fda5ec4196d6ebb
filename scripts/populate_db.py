import os
import sys
import django
import random
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'swap_marketplace.settings')
django.setup()

from core.choices import ItemCondition, TradeRequestStatus
from core.exceptions import TradeError
from core.item_registry import ItemRegistry
from core.ledger import RatingLedger
from core.models import TradeRequest, User
from core.trade_engine import TradeEngine

fake = Faker()

registry = ItemRegistry()
engine = TradeEngine(items=registry)
ledger = RatingLedger()


def create_users(num_users=20):
    print(f"Creating {num_users} users...")
    users = []

    for _ in range(num_users):
        email = fake.unique.email()
        username = email.split('@')[0][:30]
        user = User.objects.create_user(
            username=username,
            email=email,
            password='password123',
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            bio=fake.sentence(nb_words=12),
            latitude=fake.latitude(),
            longitude=fake.longitude(),
        )
        users.append(user)

    print(f"Created {len(users)} users.")
    return users


def create_items(users):
    print("Creating items...")
    items = []

    categories = ['Books', 'Electronics', 'Furniture', 'Clothing', 'Games', 'Kitchen', 'Sports']
    titles = [
        "Desk Lamp", "Board Game", "Road Bike", "Winter Jacket", "Bookshelf",
        "Headphones", "Coffee Maker", "Tennis Racket", "Novel Collection", "Guitar"
    ]

    for user in users:
        # Each user lists 1-4 items
        for _ in range(random.randint(1, 4)):
            data = {
                'title': f"{random.choice(['Vintage', 'Modern', 'Used', 'Brand New'])} {random.choice(titles)}",
                'description': fake.paragraph(nb_sentences=3),
                'category': random.choice(categories),
                'condition': random.choice(ItemCondition.values),
            }
            items.append(registry.create_item(user, data))

    print(f"Created {len(items)} items.")
    return items


def create_trade_requests(users, items):
    print("Creating trade requests...")
    requests = []

    for user in users:
        own_items = [i for i in items if i.owner_id == user.pk]
        other_items = [i for i in items if i.owner_id != user.pk]
        if not own_items or not other_items:
            continue

        # Each user sends 0-3 requests
        for _ in range(random.randint(0, 3)):
            try:
                trade_request = engine.create_trade_request(
                    user.pk,
                    random.choice(other_items).pk,
                    random.choice(own_items).pk,
                    fake.sentence(),
                )
            except TradeError as e:
                print(f"  Skipped request: {e.detail}")
                continue
            requests.append(trade_request)

    print(f"Created {len(requests)} trade requests.")
    return requests


def create_trades(requests):
    print("Accepting requests and settling trades...")
    trades = []

    for trade_request in requests:
        # Roughly half of the requests get a response
        if random.random() < 0.5:
            continue

        owner_id = trade_request.requested_item.owner_id
        try:
            if random.random() < 0.25:
                engine.reject_trade_request(owner_id, trade_request.pk)
                continue
            result = engine.accept_trade_request(owner_id, trade_request.pk)
        except TradeError as e:
            # Earlier acceptances reject competing requests
            print(f"  Skipped request {trade_request.pk}: {e.detail}")
            continue

        trade = result.trade
        outcome = random.random()
        if outcome < 0.7:
            trade = engine.complete_trade(random.choice([trade.owner_id, trade.requester_id]), trade.pk)
        elif outcome < 0.85:
            trade = engine.cancel_trade(trade.owner_id, trade.pk)
        trades.append(trade)

    print(f"Created {len(trades)} trades.")
    return trades


def create_ratings(trades):
    print("Creating ratings...")
    ratings = []

    completed = [t for t in trades if t.completed_at is not None]

    for trade in completed:
        for rater_id, reviewee_id in ((trade.owner_id, trade.requester_id),
                                      (trade.requester_id, trade.owner_id)):
            # 70% chance of leaving a rating
            if random.random() < 0.7:
                rating = ledger.create_rating(
                    rater_id,
                    reviewee_id,
                    trade.pk,
                    random.choices([5, 4, 3, 2, 1], weights=[5, 4, 2, 1, 1])[0],
                    fake.sentence(),
                )
                ratings.append(rating)

    print(f"Created {len(ratings)} ratings.")
    return ratings


def main():
    print("Starting database population...")

    users = create_users(num_users=20)
    items = create_items(users)
    requests = create_trade_requests(users, items)
    trades = create_trades(requests)
    create_ratings(trades)

    pending = TradeRequest.objects.filter(status=TradeRequestStatus.PENDING).count()
    print(f"{pending} trade requests were left pending.")
    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
