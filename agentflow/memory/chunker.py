import re

from agentflow.config.settings import ChunkingStrategy

SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')
PARAGRAPH_BOUNDARY = re.compile(r'\n\s*\n')


class DocumentChunker:
    """Splits documents into embedding-sized chunks.

    ``sentence`` packs whole sentences up to ``chunk_size`` characters and
    carries up to ``overlap`` trailing characters into the next chunk;
    ``paragraph`` packs whole paragraphs and falls back to sentences for an
    oversized one; ``fixed`` cuts at the word boundary nearest to every
    ``chunk_size`` characters.
    """

    def __init__(self, strategy: ChunkingStrategy | str = ChunkingStrategy.Sentence, chunk_size: int = 1000, overlap: int = 200):
        self.strategy = ChunkingStrategy(strategy)
        self.chunk_size = chunk_size
        self.overlap = overlap

    def chunk(self, content: str) -> list[str]:
        content = content.strip()
        if not content:
            return []
        if self.strategy == ChunkingStrategy.Paragraph:
            chunks = self._by_paragraph(content)
        elif self.strategy == ChunkingStrategy.Fixed:
            chunks = self._by_fixed_size(content)
        else:
            chunks = self._by_sentence(content)
        return [c for c in chunks if c.strip()]

    def _by_sentence(self, content: str) -> list[str]:
        sentences = [s.strip() for s in SENTENCE_BOUNDARY.split(content) if s.strip()]
        if not sentences:
            return [content]

        chunks: list[str] = []
        current = ''
        for sentence in sentences:
            if current and len(f"{current} {sentence}") > self.chunk_size:
                chunks.append(current.strip())
                current = self._overlap_tail(current) + sentence
            else:
                current = f"{current} {sentence}" if current else sentence
        if current.strip():
            chunks.append(current.strip())
        return chunks

    def _by_paragraph(self, content: str) -> list[str]:
        paragraphs = [p.strip() for p in PARAGRAPH_BOUNDARY.split(content) if p.strip()]
        if not paragraphs:
            return [content]

        chunks: list[str] = []
        current = ''
        for paragraph in paragraphs:
            if len(paragraph) > self.chunk_size:
                if current:
                    chunks.append(current.strip())
                    current = ''
                chunks.extend(self._by_sentence(paragraph))
                continue
            if current and len(f"{current}\n\n{paragraph}") > self.chunk_size:
                chunks.append(current.strip())
                current = paragraph
            else:
                current = f"{current}\n\n{paragraph}" if current else paragraph
        if current.strip():
            chunks.append(current.strip())
        return chunks

    def _by_fixed_size(self, content: str) -> list[str]:
        chunks: list[str] = []
        length = len(content)
        position = 0
        while position < length:
            end = min(position + self.chunk_size, length)
            if end < length:
                next_space = content.find(' ', end)
                prev_space = content.rfind(' ', position + 1, end + 1)
                candidates = [s for s in (prev_space, next_space) if s > position]
                if candidates:
                    end = min(candidates, key=lambda s: abs(s - end))
            chunks.append(content[position:end].strip())
            if end >= length:
                break
            position = max(position + 1, end - self.overlap)
        return chunks

    def _overlap_tail(self, chunk: str) -> str:
        if self.overlap <= 0 or len(chunk) <= self.overlap:
            return ''
        tail = chunk[-self.overlap:]
        first_space = tail.find(' ')
        if 0 <= first_space < self.overlap / 2:
            tail = tail[first_space + 1:]
        tail = tail.strip()
        return f"{tail} " if tail else ''
