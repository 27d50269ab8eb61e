"""Firestoreクライアント"""
import os
from typing import Any, Callable, Optional

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore

from ....shared.exceptions.errors import StorageError
from ....shared.logging.config import get_logger

logger = get_logger(__name__)


class FirestoreClient:
    """Firestore操作クライアント"""

    def __init__(self, project_id: str, database_id: str = "(default)") -> None:
        """
        Firestoreクライアントを初期化

        Args:
            project_id: GCPプロジェクトID
            database_id: データベースID（デフォルトは"(default)"）
        """
        self.project_id = project_id
        self.database_id = database_id

        # エミュレータモードの検出
        emulator_host = os.environ.get("FIRESTORE_EMULATOR_HOST")

        try:
            self.client = firestore.Client(project=project_id, database=database_id)

            if emulator_host:
                logger.info(
                    f"Firestore client initialized (EMULATOR MODE): "
                    f"host={emulator_host}, project={project_id}, database={database_id}"
                )
            else:
                logger.info(
                    f"Firestore client initialized: project={project_id}, database={database_id}"
                )
        except Exception as e:
            raise StorageError(f"Failed to initialize Firestore client: {e}") from e

    def user_collection(
        self, users_collection: str, user_id: str, subcollection: str
    ) -> firestore.CollectionReference:
        """
        ユーザー配下のサブコレクション参照を取得

        Args:
            users_collection: ユーザーコレクション名
            user_id: ユーザーID
            subcollection: サブコレクション名

        Returns:
            CollectionReference: users/{user_id}/{subcollection}
        """
        return (
            self.client.collection(users_collection)
            .document(user_id)
            .collection(subcollection)
        )

    def stream_documents(
        self,
        collection: firestore.CollectionReference,
        order_by: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        コレクション内の全ドキュメントを取得

        Args:
            collection: コレクション参照
            order_by: 昇順ソートするフィールド名

        Returns:
            list[dict[str, Any]]: ドキュメントのリスト
        """
        try:
            query = collection.order_by(order_by) if order_by else collection
            return [doc.to_dict() for doc in query.stream() if doc.exists]

        except Exception as e:
            raise StorageError(f"Failed to stream documents from {collection.id}: {e}") from e

    def create_document(
        self,
        collection: firestore.CollectionReference,
        document_id: str,
        data: dict[str, Any],
    ) -> bool:
        """
        ドキュメントを新規作成（既に存在する場合は作成しない）

        Returns:
            bool: 作成した場合True、同じIDのドキュメントが既に存在した場合False
        """
        try:
            collection.document(document_id).create(data)
            logger.info(f"Document {document_id} created in {collection.id}")
            return True

        except AlreadyExists:
            logger.info(f"Document {document_id} already exists in {collection.id}")
            return False
        except Exception as e:
            raise StorageError(
                f"Failed to create document {document_id} in {collection.id}: {e}"
            ) from e

    def upsert_in_transaction(
        self,
        collection: firestore.CollectionReference,
        document_id: str,
        update: Callable[[Optional[dict[str, Any]]], dict[str, Any]],
    ) -> dict[str, Any]:
        """
        トランザクション内で読み取り → 更新 → 書き込みを行う

        競合時はFirestoreがトランザクションを再実行するため、
        update は副作用のない関数であること

        Args:
            collection: コレクション参照
            document_id: ドキュメントID
            update: 現在のデータ（存在しない場合None）を受け取り、新しいデータを返す関数

        Returns:
            dict[str, Any]: 書き込んだデータ
        """
        doc_ref = collection.document(document_id)

        @firestore.transactional
        def run(transaction: firestore.Transaction) -> dict[str, Any]:
            snapshot = doc_ref.get(transaction=transaction)
            current = snapshot.to_dict() if snapshot.exists else None
            updated = update(current)
            transaction.set(doc_ref, updated)
            return updated

        try:
            return run(self.client.transaction())

        except Exception as e:
            raise StorageError(
                f"Failed to upsert document {document_id} in {collection.id}: {e}"
            ) from e

    def delete_document(self, collection: firestore.CollectionReference, document_id: str) -> bool:
        """
        ドキュメントを削除

        Returns:
            bool: 削除した場合True、存在しなかった場合False
        """
        try:
            doc_ref = collection.document(document_id)
            if not doc_ref.get().exists:
                return False

            doc_ref.delete()
            logger.info(f"Document {document_id} deleted from {collection.id}")
            return True

        except Exception as e:
            raise StorageError(
                f"Failed to delete document {document_id} from {collection.id}: {e}"
            ) from e
