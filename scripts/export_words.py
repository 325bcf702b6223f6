#!/usr/bin/env python3
"""
Export the vocabulary catalog (words and their questions) to JSON
"""

import json
import sqlite3
import sys
from pathlib import Path

from lexiduel.core.database.connection import DatabaseConnection
from lexiduel.core.database.repositories.word_repository import WordRepository
from lexiduel.utils import utc_now

WORD_FIELDS = ("english", "native", "level", "lesson_name", "synonyms", "antonyms", "order_index", "is_active")
QUESTION_FIELDS = (
    "question_text", "option_a", "option_b", "option_c", "option_d",
    "correct_option", "explanation_text", "question_style",
)


def export_catalog(db_path: str, output_path: str) -> bool:
    """Export all catalog words with their questions to JSON"""
    try:
        print(f"📖 Exporting catalog from {db_path}")
        word_repo = WordRepository(DatabaseConnection(db_path))

        words = []
        question_count = 0
        for word in word_repo.get_all_words():
            exported = {field: word[field] for field in WORD_FIELDS}
            exported["is_active"] = bool(exported["is_active"])
            questions = word_repo.get_questions_for_word(word["id"])
            exported["questions"] = [
                {field: question[field] for field in QUESTION_FIELDS} for question in questions
            ]
            question_count += len(questions)
            words.append(exported)

        print(f"  📝 Found {len(words)} words")
        print(f"  ❓ Found {question_count} questions")

        export_data = {
            "export_info": {
                "exported_at": utc_now().isoformat(),
                "database_path": db_path,
            },
            "words": words,
            "statistics": {
                "total_words": len(words),
                "total_questions": question_count,
            },
        }

        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)

        with open(output_file, 'w', encoding='utf-8') as f:
            json.dump(export_data, f, indent=2, ensure_ascii=False, default=str)

        print(f"✅ Successfully exported data to {output_path}")
        return True

    except (OSError, sqlite3.Error) as e:
        print(f"❌ Export failed: {e}")
        return False


def main():
    """Main export function"""
    if len(sys.argv) != 3:
        print("Usage: python export_words.py <database_path> <output_json_path>")
        print("Example: python export_words.py data/lexiduel.db data/catalog.json")
        sys.exit(1)

    db_path = sys.argv[1]
    output_path = sys.argv[2]

    if not Path(db_path).exists():
        print(f"❌ Database file not found: {db_path}")
        sys.exit(1)

    print(f"🚀 Starting export from {db_path} to {output_path}")

    if export_catalog(db_path, output_path):
        print("🎉 Export completed successfully!")
        sys.exit(0)
    else:
        print("💥 Export failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
