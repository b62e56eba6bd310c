"""
サンプルデータ投入
- 既存のコンテンツ / カテゴリ / 管理者を削除
- 管理者 admin@example.com / admin123
- 共通カテゴリ 8 件、各種別 6 件ずつのコンテンツ

usage: python scripts/seed.py
"""
import asyncio
import os
import sys

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# プロジェクトのモジュールをインポート
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
from catalog.auth import hash_password
from catalog.models import AdminUser, Base, Category, Content, ContentCategory

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin123"

CATEGORIES = [
    ("Action", "action"),
    ("Romance", "romance"),
    ("Comedy", "comedy"),
    ("Fantasy", "fantasy"),
    ("Horror", "horror"),
    ("Sci-Fi", "sci-fi"),
    ("Slice of Life", "slice-of-life"),
    ("Drama", "drama"),
]

IMAGE_URL = "https://images.unsplash.com/photo-{}?w=400&h=600&fit=crop"

# (title, slug, image id, description, external path, views, clicks, categories)
CONTENT = {
    "MANGA": [
        ("One Piece", "one-piece", "1578632767115-351597cf2477",
         "Follow Monkey D. Luffy and his pirate crew in their quest to find the legendary treasure One Piece.",
         "one-piece", 15000, 8500, ["action", "fantasy", "comedy"]),
        ("Naruto", "naruto", "1601850494422-3cf14624b0b3",
         "The story of Naruto Uzumaki, a young ninja who seeks recognition and dreams of becoming the Hokage.",
         "naruto", 12000, 6800, ["action", "fantasy"]),
        ("Attack on Titan", "attack-on-titan", "1612036782180-6f0b6cd846fe",
         "Humanity lives inside cities surrounded by enormous walls due to the Titans, gigantic humanoid creatures.",
         "aot", 18000, 9200, ["action", "horror", "drama"]),
        ("My Hero Academia", "my-hero-academia", "1618336753974-aae8e04506aa",
         "A story about a boy born without powers in a world where 80% of the population has superpowers.",
         "mha", 10500, 5400, ["action", "comedy"]),
        ("Demon Slayer", "demon-slayer", "1578662996442-48f60103fc96",
         "Tanjiro Kamado becomes a demon slayer after his family is slaughtered and his sister is turned into a demon.",
         "demon-slayer", 14000, 7800, ["action", "fantasy", "drama"]),
        ("Jujutsu Kaisen", "jujutsu-kaisen", "1560972550-aba3456b5564",
         "Yuji Itadori joins a secret organization of Jujutsu Sorcerers to kill a powerful Curse named Ryomen Sukuna.",
         "jjk", 11000, 6200, ["action", "horror"]),
    ],
    "ANIME": [
        ("Spirited Away", "spirited-away", "1440404653325-ab127d49abc1",
         "A young girl finds herself in a mystical world of spirits and must work to save her parents.",
         "spirited-away", 22000, 12000, ["fantasy", "drama"]),
        ("Your Name", "your-name", "1533928298208-27ff66555d8d",
         "Two teenagers share a profound connection after they begin switching bodies.",
         "your-name", 19500, 10800, ["romance", "fantasy", "drama"]),
        ("Fullmetal Alchemist Brotherhood", "fullmetal-alchemist-brotherhood", "1607604276583-eef5d076aa5f",
         "Two brothers use alchemy to search for the Philosopher's Stone to restore their bodies.",
         "fmab", 25000, 14000, ["action", "fantasy", "drama"]),
        ("Steins;Gate", "steins-gate", "1534972195531-d756b9bfa9f2",
         "A self-proclaimed mad scientist discovers time travel through a modified microwave.",
         "steins-gate", 16000, 8900, ["sci-fi", "drama"]),
        ("Violet Evergarden", "violet-evergarden", "1518709268805-4e9042af9f23",
         "A former soldier becomes a letter writer to understand the meaning of love.",
         "violet-evergarden", 13500, 7600, ["drama", "slice-of-life"]),
        ("Death Note", "death-note", "1489367874814-f5d040621dd8",
         "A high school student discovers a supernatural notebook that can kill anyone whose name is written in it.",
         "death-note", 21000, 11500, ["horror", "drama"]),
    ],
    "MOVIE": [
        ("Inception", "inception", "1478720568477-152d9b164e26",
         "A thief who enters the dreams of others to steal secrets is given a chance to erase his criminal record.",
         "inception", 28000, 15500, ["sci-fi", "action"]),
        ("The Dark Knight", "the-dark-knight", "1509347528160-9a9e33742cdb",
         "Batman faces his greatest psychological and physical tests as he fights the anarchist mastermind known as the Joker.",
         "dark-knight", 32000, 18000, ["action", "drama"]),
        ("Interstellar", "interstellar", "1446776811953-b23d57bd21aa",
         "A team of explorers travel through a wormhole in space to ensure humanity's survival.",
         "interstellar", 26000, 14200, ["sci-fi", "drama"]),
        ("Parasite", "parasite", "1485846234645-a62644f84728",
         "A poor family schemes to become employed by a wealthy family and infiltrate their household.",
         "parasite", 19000, 10500, ["drama", "comedy", "horror"]),
        ("The Matrix", "the-matrix", "1526374965328-7f61d4dc18c5",
         "A computer hacker learns about the true nature of his reality and his role in the war against its controllers.",
         "the-matrix", 30000, 16800, ["sci-fi", "action"]),
        ("Blade Runner 2049", "blade-runner-2049", "1534796636912-3b95b3ab5986",
         "A young blade runner discovers a secret that leads him to track down a former blade runner who has been missing for thirty years.",
         "blade-runner-2049", 17500, 9600, ["sci-fi", "drama"]),
    ],
}


async def seed(database_url: str = config.DATABASE_URL) -> None:
    engine = create_async_engine(database_url, echo=False)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    print("データベースにサンプルデータを投入します...")
    async with session_factory() as db:
        # 既存データの削除（子テーブルから）
        await db.execute(delete(ContentCategory))
        await db.execute(delete(Content))
        await db.execute(delete(Category))
        await db.execute(delete(AdminUser))

        db.add(
            AdminUser(
                name="Admin User",
                email=ADMIN_EMAIL,
                password_hash=hash_password(ADMIN_PASSWORD),
                role="SUPER_ADMIN",
                status="ACTIVE",
            )
        )
        print(f"管理者を作成: {ADMIN_EMAIL} / {ADMIN_PASSWORD}")

        category_ids = {}
        for sort_order, (name, slug) in enumerate(CATEGORIES, start=1):
            category = Category(name=name, slug=slug, type_scope="UNIVERSAL", sort_order=sort_order)
            db.add(category)
            await db.flush()
            category_ids[slug] = category.id
        print(f"カテゴリを作成: {len(category_ids)}件")

        for content_type, items in CONTENT.items():
            for title, slug, image_id, description, path, views, clicks, categories in items:
                content = Content(
                    title=title,
                    slug=slug,
                    type=content_type,
                    image_url=IMAGE_URL.format(image_id),
                    description=description,
                    external_url=f"https://example.com/{path}",
                    views_total=views,
                    clicks_total=clicks,
                )
                db.add(content)
                await db.flush()
                for category_slug in categories:
                    if category_slug in category_ids:
                        db.add(ContentCategory(content_id=content.id, category_id=category_ids[category_slug]))
            print(f"{content_type}: {len(items)}件")

        await db.commit()

    await engine.dispose()
    print("サンプルデータの投入が完了しました")


if __name__ == "__main__":
    os.makedirs("db", exist_ok=True)
    asyncio.run(seed())
