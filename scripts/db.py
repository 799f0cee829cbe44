"""数据库管理脚本"""
import sys
import uuid
from pathlib import Path

# 将项目根目录添加到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from alembic.config import Config
from alembic import command
from sqlalchemy import func, select
from db.session import SessionLocal, sync_engine
from db.base import Base
from db.models import Organization, OrgMembership, OrgRole, User
import db.models  # noqa 导入所有模型以便 Base.metadata 能找到它们


def _alembic_config() -> Config:
    return Config(str(project_root / "alembic.ini"))


def _find_user(session, email: str) -> User:
    user = session.execute(
        select(User).where(func.lower(User.email) == email.lower())
    ).scalar_one_or_none()
    if user is None:
        print(f"❌ 找不到用户 {email}（用户需要先登录一次控制台）")
        sys.exit(1)
    return user


def init_db():
    """创建所有表（开发环境；生产环境使用 upgrade）"""
    print("🔧 初始化数据库...")
    Base.metadata.create_all(bind=sync_engine)
    print("✅ 已创建的表：")
    for table in Base.metadata.sorted_tables:
        print(f"  - {table.name}")


def migrate(message: str = "auto migration"):
    """根据模型变化生成迁移脚本"""
    command.revision(_alembic_config(), autogenerate=True, message=message)
    print(f"✅ 迁移脚本已生成: {message}")


def upgrade(revision: str = "head"):
    command.upgrade(_alembic_config(), revision)
    print(f"✅ 已升级到 {revision}")


def downgrade(revision: str = "-1"):
    command.downgrade(_alembic_config(), revision)
    print(f"✅ 已回滚到 {revision}")


def grant_platform_admin(email: str):
    """授予平台管理员"""
    with SessionLocal() as session:
        user = _find_user(session, email)
        user.is_super_admin = True
        session.commit()
    print(f"✅ {email} 已成为平台管理员")


def create_organization(name: str, owner_email: str):
    """创建组织并指定第一个 owner（平台还没有管理员时使用）"""
    with SessionLocal() as session:
        owner = _find_user(session, owner_email)
        org = Organization(id=str(uuid.uuid4()), name=name)
        session.add(org)
        session.add(OrgMembership(user_id=owner.id, org_id=org.id, role=OrgRole.OWNER))
        session.commit()
        print(f"✅ 已创建组织 {name}: {org.id}")


ACTIONS = {
    "init": (init_db, "", "创建所有表"),
    "migrate": (migrate, "[message]", "生成迁移脚本"),
    "upgrade": (upgrade, "[revision]", "应用迁移（默认 head）"),
    "downgrade": (downgrade, "[revision]", "回滚迁移（默认 -1）"),
    "grant-platform-admin": (grant_platform_admin, "<email>", "授予平台管理员"),
    "create-org": (create_organization, "<name> <owner_email>", "创建组织"),
}


def usage():
    print("用法: python scripts/db.py <action> [args]")
    print("可用操作:")
    for name, (_, args, description) in ACTIONS.items():
        print(f"  {f'{name} {args}'.strip():<40} - {description}")


if __name__ == "__main__":
    if len(sys.argv) < 2 or sys.argv[1] not in ACTIONS:
        usage()
        sys.exit(1)

    func_, _, _ = ACTIONS[sys.argv[1]]
    try:
        func_(*sys.argv[2:])
    except TypeError:
        usage()
        sys.exit(1)
    except Exception as e:
        print(f"❌ {sys.argv[1]} 失败: {e}")
        sys.exit(1)
